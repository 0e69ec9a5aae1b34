from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, JSON, String, Text,
)
from sqlalchemy.orm import relationship
from .database import Base
from ..schemas.io_models import CustomerPreferences
import enum


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so every column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageDirection(str, enum.Enum):
    incoming = "incoming"
    outgoing = "outgoing"


class SenderType(str, enum.Enum):
    customer = "customer"
    ai = "ai"
    human = "human"


class ResolutionStatus(str, enum.Enum):
    ongoing = "ongoing"
    resolved = "resolved"
    escalated = "escalated"
    abandoned = "abandoned"


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    last_active = Column(DateTime, default=utcnow, nullable=False)
    conversation_state = Column(String, nullable=False, default="greeting")
    needs_human_support = Column(Boolean, nullable=False, default=False)
    is_online = Column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=False, default=dict)

    messages = relationship("Message", back_populates="customer")

    @property
    def preferences(self) -> CustomerPreferences:
        return CustomerPreferences.model_validate(self.meta or {})


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    phone_number = Column(String, index=True, nullable=False)
    message_content = Column(Text, nullable=False)
    message_type = Column(String, nullable=False, default="text")
    direction = Column(Enum(MessageDirection), nullable=False)
    sender_type = Column(Enum(SenderType), nullable=False)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    status = Column(String, nullable=False, default="sent")
    ai_response_time = Column(Integer, nullable=True)  # milliseconds
    whatsapp_message_id = Column(String, nullable=True)

    customer = relationship("Customer", back_populates="messages")


class ConversationSession(Base):
    __tablename__ = "conversation_sessions"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    phone_number = Column(String, index=True, nullable=False)
    session_start = Column(DateTime, default=utcnow, nullable=False)
    session_end = Column(DateTime, nullable=True)
    is_human_mode = Column(Boolean, nullable=False, default=False)
    conversation_summary = Column(Text, nullable=True)
    total_messages = Column(Integer, nullable=False, default=0)
    customer_messages = Column(Integer, nullable=False, default=0)
    ai_messages = Column(Integer, nullable=False, default=0)
    human_messages = Column(Integer, nullable=False, default=0)
    resolution_status = Column(Enum(ResolutionStatus), nullable=False, default=ResolutionStatus.ongoing)
    escalation_reason = Column(String, nullable=True)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    product_code = Column(String, unique=True, index=True, nullable=False)
    product_name_chinese = Column(String, nullable=False)
    product_name_english = Column(String, nullable=True)
    size = Column(String, nullable=True)
    box_specification = Column(String, nullable=True)
    wholesale_price = Column(Float, nullable=True)
    search_text = Column(Text, nullable=False, default="")
    embedding = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def build_search_text(self) -> str:
        parts = [
            self.product_code,
            self.product_name_chinese,
            self.product_name_english,
            self.size,
            self.box_specification,
        ]
        return " ".join(p for p in parts if p)


class ProductAlias(Base):
    __tablename__ = "product_aliases"

    id = Column(Integer, primary_key=True, index=True)
    alias_name = Column(String, index=True, nullable=False)
    product_code = Column(String, index=True, nullable=False)
    product_name_display = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class KnowledgeEntry(Base):
    __tablename__ = "knowledge_entries"

    id = Column(Integer, primary_key=True, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    category = Column(String, index=True, nullable=False, default="general")
    source = Column(String, nullable=False, default="manual")
    created_by = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    confidence_score = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SessionLock(Base):
    __tablename__ = "session_locks"

    phone_number = Column(String, primary_key=True)
    session_ref = Column(String, nullable=True)
    acquired_at = Column(DateTime, nullable=False)
    locked_until = Column(DateTime, nullable=False)
    is_locked = Column(Boolean, nullable=False, default=True)
    reason = Column(String, nullable=True)


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String, index=True, nullable=True)
    message_id = Column(String, nullable=True)
    event_type = Column(String, nullable=False)
    message_content = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
