"""
Record Types

Immutable value types for the transactional records the metrics engine reads,
and the enumerations the engine classifies them with. Record sources (SQL,
polars frames, in-memory lists) convert their rows into these types so the
aggregation code never depends on how the rows were fetched.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class ServiceRequestStatus(str, Enum):
    """Service request status enumeration"""
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Segment(str, Enum):
    """Customer segment, exactly one per customer"""
    NEW = "NEW"
    REGULAR = "REGULAR"
    VIP = "VIP"
    AT_RISK = "AT_RISK"
    LOST = "LOST"


class StockStatus(str, Enum):
    """Inventory alert severity"""
    OUT_OF_STOCK = "OUT_OF_STOCK"
    CRITICAL = "CRITICAL"
    LOW_STOCK = "LOW_STOCK"


UNCATEGORIZED = "Uncategorized"
UNKNOWN_REGION = "Unknown"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class OrderRecord:
    """A placed order; `created_at` is the order date."""
    id: str
    customer_id: str
    total_amount: Decimal
    status: OrderStatus
    created_at: datetime
    wilaya: Optional[str] = None

    def __post_init__(self):
        if self.total_amount < 0:
            raise ValueError(f"Order {self.id} has a negative total")
        object.__setattr__(self, "status", OrderStatus(self.status))
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))

    @property
    def is_revenue_eligible(self) -> bool:
        return self.status != OrderStatus.CANCELLED


@dataclass(frozen=True)
class OrderItemRecord:
    """A line of an order. `total_price` is authoritative over unit_price * quantity."""
    order_id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Order item of {self.order_id} has non-positive quantity")


@dataclass(frozen=True)
class CustomerRecord:
    """A customer account."""
    id: str
    created_at: datetime
    name: Optional[str] = None
    wilaya: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))


@dataclass(frozen=True)
class ServiceRequestRecord:
    """A technician service request."""
    id: str
    status: ServiceRequestStatus
    created_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "status", ServiceRequestStatus(self.status))
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))


@dataclass(frozen=True)
class ProductRecord:
    """A catalog product with its stock level and reorder point."""
    id: str
    name: str
    stock_quantity: int
    category_name: Optional[str] = None
    minimum_stock: Optional[int] = None  # None falls back to the default reorder point
    is_active: bool = True

    def __post_init__(self):
        if self.stock_quantity < 0:
            raise ValueError(f"Product {self.id} has negative stock")

    @property
    def category(self) -> str:
        return self.category_name or UNCATEGORIZED
