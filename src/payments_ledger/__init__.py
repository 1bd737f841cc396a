from .ledger import Ledger
from .payments_engine import PaymentsEngine, InputFormatError

__all__ = ["Ledger", "PaymentsEngine", "InputFormatError"]
