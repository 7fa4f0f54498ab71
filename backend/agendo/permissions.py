"""
Permission Constants and Role Mappings

Permission codes checked by the services. Roles come from the auth
provider (admin, staff, professional); this module maps them to codes.

RULES:
- Permissions are granular (one action per permission)
- Roles get only the codes listed for them below
- Admin has all permissions
- "Own" permissions are additionally scoped to the actor's professional id
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    AGENDA = "AGENDA"
    CHECKOUT = "CHECKOUT"
    INVENTORY = "INVENTORY"
    CASH = "CASH"
    CLIENTS = "CLIENTS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    ("BOOK_APPOINTMENT", "Book Appointment", "Create bookings for any professional", PermissionCategory.AGENDA),
    ("BOOK_OWN_APPOINTMENT", "Book Own Appointment", "Create bookings on one's own agenda", PermissionCategory.AGENDA),
    ("EDIT_APPOINTMENT", "Edit Appointment", "Reschedule or advance any appointment", PermissionCategory.AGENDA),
    ("EDIT_OWN_APPOINTMENT", "Edit Own Appointment", "Reschedule or advance one's own appointments", PermissionCategory.AGENDA),
    ("CANCEL_APPOINTMENT", "Cancel Appointment", "Cancel any non-terminal appointment", PermissionCategory.AGENDA),
    ("CANCEL_OWN_APPOINTMENT", "Cancel Own Appointment", "Cancel one's own appointments", PermissionCategory.AGENDA),
    ("BYPASS_CANCELLATION_WINDOW", "Bypass Cancellation Window", "Cancel inside the tenant's cancellation window", PermissionCategory.AGENDA),
    ("DELETE_APPOINTMENT", "Delete Appointment", "Hard-delete an appointment (admin action)", PermissionCategory.AGENDA),
    ("MANAGE_BOOKING_POLICY", "Manage Booking Policy", "Set business hours and the booking window", PermissionCategory.AGENDA),
    ("SETTLE_APPOINTMENT", "Settle Appointment", "Run checkout for any appointment", PermissionCategory.CHECKOUT),
    ("SETTLE_OWN_APPOINTMENT", "Settle Own Appointment", "Run checkout for one's own appointments (tenant setting)", PermissionCategory.CHECKOUT),
    ("RECORD_DIRECT_SALE", "Record Direct Sale", "Sell products without an appointment", PermissionCategory.CHECKOUT),
    ("VIEW_STOCK", "View Stock", "View stock levels and movements", PermissionCategory.INVENTORY),
    ("MOVE_STOCK", "Move Stock", "Record stock movements and purchases", PermissionCategory.INVENTORY),
    ("VIEW_CASH", "View Cash Ledger", "View cash transactions and balances", PermissionCategory.CASH),
    ("RECORD_CASH", "Record Cash Transaction", "Append manual cash transactions", PermissionCategory.CASH),
    ("RECONCILE_CASH", "Reconcile Cash", "Append cash count adjustments", PermissionCategory.CASH),
    ("PAY_COMMISSION", "Pay Commission", "Mark commissions as paid", PermissionCategory.CASH),
    ("ADJUST_CLIENT_BALANCE", "Adjust Client Balance", "Credit or debit a client's balance", PermissionCategory.CLIENTS),
    ("MANAGE_SUBSCRIPTIONS", "Manage Subscriptions", "Activate flat-rate client subscriptions", PermissionCategory.CLIENTS),
]


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [perm[0] for perm in PERMISSION_DEFINITIONS],

    "staff": [
        # Front desk: agenda, checkout, cash counter
        "BOOK_APPOINTMENT",
        "EDIT_APPOINTMENT",
        "CANCEL_OWN_APPOINTMENT",  # bookings they created
        "SETTLE_APPOINTMENT",
        "RECORD_DIRECT_SALE",
        "VIEW_STOCK",
        "MOVE_STOCK",
        "VIEW_CASH",
        "RECORD_CASH",
        "ADJUST_CLIENT_BALANCE",
        "MANAGE_SUBSCRIPTIONS",
    ],

    "professional": [
        # Professional: own agenda only
        "BOOK_OWN_APPOINTMENT",
        "EDIT_OWN_APPOINTMENT",
        "CANCEL_OWN_APPOINTMENT",
        "SETTLE_OWN_APPOINTMENT",
        "VIEW_STOCK",
    ],
}
