import uuid

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Numeric,
    Boolean,
    TIMESTAMP,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


def store_fk():
    return Column(
        UUID(as_uuid=True),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


# =========================
# Store (tenant)
# =========================
class Store(Base):
    """
    A connected WooCommerce store.
    Every other table carries store_id and is only ever read through it.
    """

    __tablename__ = "stores"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    store_url = Column(String, nullable=False, unique=True, index=True)
    api_key_hash = Column(String, nullable=False)
    plan = Column(String, nullable=False, server_default="free")
    is_active = Column(Boolean, nullable=False, server_default="true")

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    orders = relationship(
        "Order",
        back_populates="store",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========================
# Category
# =========================
class Category(Base):
    __tablename__ = "categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id = store_fk()

    wc_category_id = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    parent_id = Column(UUID(as_uuid=True), nullable=True)
    product_count = Column(Integer, default=0)


# =========================
# Product
# =========================
class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id = store_fk()

    wc_product_id = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    sku = Column(String)
    price = Column(Numeric(12, 2))
    regular_price = Column(Numeric(12, 2))
    sale_price = Column(Numeric(12, 2))

    category_id = Column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True)
    category_name = Column(String)

    stock_quantity = Column(Integer)
    stock_status = Column(String)  # instock/outofstock/onbackorder
    status = Column(String)  # publish/draft/private
    type = Column(String)  # simple/variable/grouped

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


# =========================
# Customer
# =========================
class Customer(Base):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id = store_fk()

    wc_customer_id = Column(Integer, nullable=False)
    display_name = Column(String)
    email_hash = Column(String)  # sha256, never returned by AI queries
    total_spent = Column(Numeric(12, 2), default=0)
    order_count = Column(Integer, default=0)
    first_order_date = Column(TIMESTAMP(timezone=True))
    last_order_date = Column(TIMESTAMP(timezone=True))

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


# =========================
# Order
# =========================
class Order(Base):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id = store_fk()

    wc_order_id = Column(Integer, nullable=False)
    date_created = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    date_modified = Column(TIMESTAMP(timezone=True))
    status = Column(String, nullable=False)

    total = Column(Numeric(12, 2), nullable=False)
    subtotal = Column(Numeric(12, 2))
    tax_total = Column(Numeric(12, 2))
    shipping_total = Column(Numeric(12, 2))
    discount_total = Column(Numeric(12, 2))
    currency = Column(String, default="USD")

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    payment_method = Column(String)
    coupon_used = Column(String)

    # Relationships
    store = relationship("Store", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id = store_fk()

    order_id = Column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=True)
    product_name = Column(String)
    sku = Column(String)
    quantity = Column(Integer, nullable=False, default=1)
    subtotal = Column(Numeric(12, 2))
    total = Column(Numeric(12, 2))

    order = relationship("Order", back_populates="items")


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id = store_fk()

    wc_coupon_id = Column(Integer, nullable=False)
    code = Column(String, nullable=False)
    discount_type = Column(String)  # percent/fixed_cart/fixed_product
    amount = Column(Numeric(12, 2))
    usage_count = Column(Integer, default=0)
