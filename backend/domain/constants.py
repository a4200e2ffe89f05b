"""
Domain constants used across services/routers.
"""
from domain.enums import OrderStatus

# Forward path of the order state machine; cancelled is a side branch
ORDER_STATUS_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
ACTIVE_STATUSES = tuple(s for s in ORDER_STATUS_SEQUENCE if s not in TERMINAL_STATUSES)

# Tables the change feed watches
ORDERS_TABLE = "orders"
TRANSACTIONS_TABLE = "transactions"
WALLETS_TABLE = "wallets"
PROFILES_TABLE = "student_profiles"
SESSIONS_TABLE = "auth_sessions"
WATCHED_TABLES = (ORDERS_TABLE, TRANSACTIONS_TABLE, WALLETS_TABLE, PROFILES_TABLE)

# Named-residence pattern for delivery batching
ZONE_PATTERN = r"([A-Za-z]+\s+Hall|[A-Za-z]+\s+Hostel|[A-Za-z]+\s+Block)"
DEFAULT_ZONE = "Campus"

# Placeholders for missing optional row fields
DEFAULT_CUSTOMER_NAME = "Customer"
DEFAULT_ADDRESS = "Campus Address"
DEFAULT_RESTAURANT = "Restaurant"
DEFAULT_STORE = "EdStop Dark Store"
DEFAULT_RESTAURANT_ADDRESS = "IIT KGP Campus"
DEFAULT_TRANSACTION_DESCRIPTION = "Transaction"
DEFAULT_ETA_TEXT = "~20 mins"

# Wallet differences below this are treated as no change
WALLET_EPSILON = 0.01
