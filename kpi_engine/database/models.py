"""
Database Models - Back Office Schema

Read side of the back office transactional schema the metrics engine
aggregates over:

Reference Tables:
- Wilaya: Administrative regions used for shipping addresses
- Category: Product categories

Transactional Tables:
- Customer: Customer accounts
- Product: Catalog with stock levels and reorder points
- Order / OrderItem: Placed orders and their lines
- ServiceRequest: Technician service requests
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from kpi_engine.metrics.records import OrderStatus, ServiceRequestStatus


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# REFERENCE TABLES
# =============================================================================

class Wilaya(Base):
    """Administrative region"""
    __tablename__ = "wilayas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)  # official wilaya code
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class Category(Base):
    """Product category"""
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    products: Mapped[List["Product"]] = relationship(back_populates="category")


# =============================================================================
# TRANSACTIONAL TABLES
# =============================================================================

class Customer(Base):
    """Customer account"""
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    wilaya_id: Mapped[Optional[int]] = mapped_column(ForeignKey("wilayas.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    wilaya: Mapped[Optional[Wilaya]] = relationship()
    orders: Mapped[List["Order"]] = relationship(back_populates="customer")

    __table_args__ = (
        Index("ix_customers_created_at", "created_at"),
    )


class Product(Base):
    """
    Catalog product

    `min_stock` is the reorder point; NULL falls back to the configured default.
    """
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("categories.id"))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    min_stock: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    category: Mapped[Optional[Category]] = relationship(back_populates="products")

    __table_args__ = (
        Index("ix_products_stock", "stock_quantity"),
    )


class Order(Base):
    """Placed order; `created_at` is the order date"""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_number: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.id"), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status"), default=OrderStatus.PENDING
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_wilaya_id: Mapped[Optional[int]] = mapped_column(ForeignKey("wilayas.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    customer: Mapped[Customer] = relationship(back_populates="orders")
    shipping_wilaya: Mapped[Optional[Wilaya]] = relationship()
    items: Mapped[List["OrderItem"]] = relationship(back_populates="order")

    __table_args__ = (
        Index("ix_orders_created_at", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_customer", "customer_id"),
    )


class OrderItem(Base):
    """Order line; `total_price` is authoritative"""
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
        Index("ix_order_items_product", "product_id"),
    )


class ServiceRequest(Base):
    """Technician service request"""
    __tablename__ = "service_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[Optional[str]] = mapped_column(ForeignKey("customers.id"))
    status: Mapped[ServiceRequestStatus] = mapped_column(
        SQLEnum(ServiceRequestStatus, name="service_request_status"),
        default=ServiceRequestStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_service_requests_created_at", "created_at"),
    )
