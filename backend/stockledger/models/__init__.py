from .stock import VariantStock
from .ledger import LedgerEntry
from .reservations import Reservation

__all__ = [
    'VariantStock',
    'LedgerEntry',
    'Reservation',
]
