"""Pydantic models for API I/O and service contracts.

Shared by the resolver, the conversation manager, the controller and the
webhook gateway so each layer exchanges typed values instead of raw dicts.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Literal, Optional

Language = Literal["zh", "en"]
SearchMethod = Literal["exact", "alias", "semantic", "fuzzy", "sample", "none"]
ProductSearchStatus = Literal["not_attempted", "found", "none_found", "search_failed"]


class CustomerPreferences(BaseModel):
    """Typed view of the JSON metadata stored on a customer row."""
    model_config = ConfigDict(extra="ignore")

    language_preference: Optional[Language] = None


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_code: str
    product_name_chinese: str
    product_name_english: Optional[str] = None
    size: Optional[str] = None
    box_specification: Optional[str] = None
    wholesale_price: Optional[float] = None


class ProductSearchResult(BaseModel):
    """Outcome of one resolver run; `items` holds Product rows."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[Any] = Field(default_factory=list)
    confidence: float = 0.0
    method: SearchMethod = "none"
    errors: List[str] = Field(default_factory=list)
    stages_run: List[str] = Field(default_factory=list)

    @property
    def search_failed(self) -> bool:
        # every stage that ran raised, so "nothing found" cannot be trusted
        return not self.items and bool(self.stages_run) and set(self.stages_run) <= set(self.errors)


class HistoryMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class Completion(BaseModel):
    text: str
    total_tokens: Optional[int] = None


class ConversationContext(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    customer: Any
    recent_messages: List[Any] = Field(default_factory=list)
    current_session: Any = None
    preferred_language: Optional[Language] = None


class ResponseMetadata(BaseModel):
    model: Optional[str] = None
    tokens: Optional[int] = None
    product_search_status: ProductSearchStatus = "not_attempted"
    products_found: int = 0
    search_method: Optional[SearchMethod] = None
    language: Language = "zh"


class AIResponse(BaseModel):
    response: str
    confidence: float
    intent: str
    requires_human: bool
    suggested_products: Optional[List[ProductSummary]] = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class InboundMessage(BaseModel):
    phone_number: str
    text: str
    message_id: str
    content_type: str = "text"
    timestamp: Optional[str] = None


class SendMessageRequest(BaseModel):
    phone_number: Optional[str] = None
    message: Optional[str] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    message_content: str
    message_type: str
    direction: str
    sender_type: str
    timestamp: datetime
    status: str
    ai_response_time: Optional[int] = None

    @field_validator("direction", "sender_type", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)
