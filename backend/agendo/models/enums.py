"""
Closed value sets shared by models, services and routes.

Stored as their string values in VARCHAR columns; coerced at the boundary with
validation.coerce_enum so no free-form string ever reaches a ledger row.
"""

from __future__ import annotations

from enum import Enum


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_SERVICE = "IN_SERVICE"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


class MovementDirection(str, Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionCategory(str, Enum):
    SERVICE = "SERVICE"
    PRODUCT = "PRODUCT"
    SALARY = "SALARY"
    COMMISSION = "COMMISSION"
    OPERATIONAL = "OPERATIONAL"
    ADJUSTMENT = "ADJUSTMENT"
    SUBSCRIPTION = "SUBSCRIPTION"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    PIX = "PIX"
    OTHER = "OTHER"


class RelatedEntityType(str, Enum):
    APPOINTMENT = "APPOINTMENT"
    CLIENT = "CLIENT"
    MANUAL = "MANUAL"


class CommissionStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class ActorRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    PROFESSIONAL = "professional"
