from .enums import (
    AppointmentStatus, MovementDirection, TransactionType, TransactionCategory,
    PaymentMethod, RelatedEntityType, CommissionStatus, ActorRole,
)
from .tenancy import Tenant
from .catalog import Professional, Service, Product
from .customers import Client
from .appointments import Appointment
from .inventory import StockMovement
from .ledger import CashTransaction, Commission

__all__ = [
    'AppointmentStatus', 'MovementDirection', 'TransactionType', 'TransactionCategory',
    'PaymentMethod', 'RelatedEntityType', 'CommissionStatus', 'ActorRole',
    'Tenant',
    'Professional', 'Service', 'Product',
    'Client',
    'Appointment',
    'StockMovement',
    'CashTransaction', 'Commission',
]
