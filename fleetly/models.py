from sqlalchemy import (
    Boolean, Column, Integer, String, Text, DateTime, Float, Enum, ForeignKey, JSON,
    Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from .database import Base

class UserRole(str, enum.Enum):
    customer = "customer"
    operator = "operator"
    admin = "admin"

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(Enum(UserRole), default=UserRole.customer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    operator = relationship("Operator", back_populates="user", uselist=False)
    requests = relationship("ServiceRequest", back_populates="customer")

class OperatorTier(str, enum.Enum):
    manual = "manual"
    equipped = "equipped"
    professional = "professional"

class ServiceType(str, enum.Enum):
    snow_plowing = "Snow Plowing"
    towing = "Towing"
    hauling = "Hauling"
    courier = "Courier"

class Operator(Base):
    __tablename__ = "operators"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String, nullable=False)
    tier = Column(Enum(OperatorTier), default=OperatorTier.manual, nullable=False)
    home_lat = Column(Float, nullable=True)
    home_lng = Column(Float, nullable=True)
    # Null means "use the tier default"; professional is always unlimited
    operating_radius_km = Column(Float, nullable=True)
    services = Column(JSON, nullable=False, default=list)
    is_online = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="operator")
    pricing_configs = relationship("PricingConfig", back_populates="operator")

class PricingConfig(Base):
    __tablename__ = "pricing_configs"
    __table_args__ = (UniqueConstraint("operator_id", "tier", "service_type", name="uq_pricing_operator_tier_service"),)
    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    tier = Column(Enum(OperatorTier), nullable=False)
    service_type = Column(String, nullable=False)
    base_rate = Column(Float, nullable=False, default=0)
    per_km_rate = Column(Float, nullable=False, default=0)
    minimum_fee = Column(Float, nullable=False, default=0)
    urgency_multipliers = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    operator = relationship("Operator", back_populates="pricing_configs")

class RequestStatus(str, enum.Enum):
    pending = "pending"
    quoted = "quoted"
    accepted = "accepted"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

class ServiceRequest(Base):
    __tablename__ = "service_requests"
    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=True)
    service_type = Column(String, nullable=False)
    is_emergency = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=False)
    location = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    details = Column(JSON, nullable=True)
    budget_range = Column(String, nullable=True)
    status = Column(Enum(RequestStatus), default=RequestStatus.pending, nullable=False)
    accepted_quote_id = Column(Integer, nullable=True)
    # Bumped on every update; a stale writer fails instead of overwriting
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    customer = relationship("User", back_populates="requests")
    operator = relationship("Operator")
    quotes = relationship("Quote", back_populates="request", order_by="Quote.id")
    __mapper_args__ = {"version_id_col": version}

class QuoteStatus(str, enum.Enum):
    sent = "sent"
    accepted = "accepted"
    declined = "declined"
    operator_withdrawn = "operator_withdrawn"
    superseded = "superseded"

class Quote(Base):
    __tablename__ = "quotes"
    __table_args__ = (
        # One live quote per operator per request
        Index(
            "uq_quotes_one_sent_per_operator", "request_id", "operator_id",
            unique=True,
            sqlite_where=text("status = 'sent'"),
            postgresql_where=text("status = 'sent'"),
        ),
        # At most one accepted quote per request
        Index(
            "uq_quotes_one_accepted_per_request", "request_id",
            unique=True,
            sqlite_where=text("status = 'accepted'"),
            postgresql_where=text("status = 'accepted'"),
        ),
    )
    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    tier = Column(Enum(OperatorTier), nullable=False)
    amount = Column(Float, nullable=False)
    breakdown = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(Enum(QuoteStatus), default=QuoteStatus.sent, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    responded_at = Column(DateTime, nullable=True)
    request = relationship("ServiceRequest", back_populates="quotes")
    operator = relationship("Operator")

class StatusEvent(Base):
    """Append-only record of one status change on a service request."""
    __tablename__ = "status_events"
    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, index=True)
    actor_role = Column(String, nullable=False)
    actor_id = Column(Integer, nullable=True)
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    audience_role = Column(String, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    type = Column(String, nullable=False)
    request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=True)
    status_event_id = Column(Integer, ForeignKey("status_events.id"), nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    delivery_state = Column(String, nullable=False, default="pending")
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class OperatorTierStats(Base):
    __tablename__ = "operator_tier_stats"
    __table_args__ = (UniqueConstraint("operator_id", "tier", name="uq_stats_operator_tier"),)
    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    tier = Column(Enum(OperatorTier), nullable=False)
    jobs_completed = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Float, nullable=False, default=0)
    last_active_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
