"""
SQLAlchemy Database Models

Tables for the multi-tenant ordering pipeline:
- restaurants: tenants, keyed by id and by unique inbound phone number
- calls: inbound calls registered against a tenant
- menus: one normalized menu per tenant, replaced wholesale on sync
- orders: draft -> priced -> confirmed, unique client_order_id
- provider_credentials: per tenant + POS provider credentials and cached token
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Enum,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from dialorder.database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


class RestaurantStatus(str, enum.Enum):
    """Tenant lifecycle."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class PosProvider(str, enum.Enum):
    """POS backends with an adapter."""
    TOAST = "toast"
    CLOVER = "clover"


class OrderStatus(str, enum.Enum):
    """Order lifecycle. Transitions only move forward."""
    DRAFT = "draft"
    PRICED = "priced"
    CONFIRMED = "confirmed"


class Restaurant(Base):
    """
    Tenant table.

    Created out-of-band (seeding/onboarding); only status and pos_provider
    change afterwards. Rows are deactivated, never deleted.
    """
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    timezone = Column(String(64), nullable=False, default="America/New_York")
    status = Column(
        Enum(RestaurantStatus),
        default=RestaurantStatus.ACTIVE,
        nullable=False,
    )
    # Free text so an unrecognized provider stays visible as a config error
    pos_provider = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Restaurant {self.id} - {self.name} - {self.status.value}>"


class Call(Base):
    """An inbound phone call answered on behalf of a tenant."""
    __tablename__ = "calls"

    id = Column(String(36), primary_key=True, default=generate_id)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    from_number = Column(String(32), nullable=False)
    to_number = Column(String(32), nullable=False)
    started_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Call {self.id} - {self.from_number} -> {self.to_number}>"


class Menu(Base):
    """
    Normalized menu snapshot for one tenant.

    The whole JSON document is replaced on every sync and version is bumped
    in the same statement.
    """
    __tablename__ = "menus"

    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    normalized_json = Column(JSON, nullable=False)
    source_hash = Column(String(64), nullable=False)
    last_sync_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Menu {self.restaurant_id} v{self.version}>"


class Order(Base):
    """
    Phone order moving through draft -> priced -> confirmed.

    client_order_id is the caller's idempotency key and is unique.
    submit_claimed_at is set when a submit takes ownership of the POS call and
    cleared again if that call fails; at most one request holds it.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_id)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    call_id = Column(String(36), ForeignKey("calls.id"), nullable=True, index=True)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.DRAFT,
        nullable=False,
        index=True
    )

    draft_json = Column(JSON, nullable=True)
    priced_json = Column(JSON, nullable=True)

    client_order_id = Column(String(128), nullable=False, unique=True)
    provider_order_id = Column(String(128), nullable=True)
    pos_provider = Column(String(32), nullable=True)
    submit_claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Order {self.id} - {self.status.value}>"


class ProviderCredential(Base):
    """
    POS credentials for one tenant and one provider.

    external_ref is the provider's id for the location (Toast restaurant
    GUID, Clover merchant id). Token columns are rewritten by the adapter on
    refresh; last write wins.
    """
    __tablename__ = "provider_credentials"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "provider", name="uq_provider_credentials_tenant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)

    external_ref = Column(String(128), nullable=False)
    client_id = Column(String(255), nullable=True)
    client_secret = Column(Text, nullable=True)
    environment = Column(String(16), nullable=False, default="sandbox")

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<ProviderCredential {self.restaurant_id} - {self.provider}>"
