#!/usr/bin/env python3
"""
Conversation state management for the chatdesk backend.

This module owns the customer and session lifecycle, message persistence,
language preference tracking, escalation and the per-phone processing lock.
"""

from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..data.models import (
    ConversationSession, Customer, Message, MessageDirection, ResolutionStatus, SenderType, utcnow,
)
from ..schemas.io_models import ConversationContext
from ..utils.logger import get_logger
from ..utils.security import mask_phone

logger = get_logger("session")

_COUNTER_BY_SENDER = {
    SenderType.customer: "customer_messages",
    SenderType.ai: "ai_messages",
    SenderType.human: "human_messages",
}


class ConversationManager:
    """Manages customers, conversation sessions and their messages."""

    def __init__(self, store, lock, clock: Callable = utcnow,
                 session_window: timedelta = timedelta(hours=24),
                 history_limit: int = 10, lock_seconds: int = 30):
        """
        Initialize the conversation manager.

        Args:
            store: DataStore used for every read and write
            lock: Session lock backend (store or Redis)
            clock: Returns the current naive UTC time
            session_window: How long an ongoing session stays reusable
            history_limit: Number of messages handed to the orchestrator
            lock_seconds: Default lifetime of a processing lock
        """
        self.store = store
        self.lock = lock
        self.clock = clock
        self.session_window = session_window
        self.history_limit = history_limit
        self.lock_seconds = lock_seconds

    # -- customers ----------------------------------------------------------

    def get_or_create_customer(self, phone_number: str, name: Optional[str] = None) -> Customer:
        """Look up a customer by phone number, creating one on first contact."""
        now = self.clock()
        try:
            customer = self.store.select_one(Customer, Customer.phone_number == phone_number)
            if customer is not None:
                # last_active never moves backwards
                self.store.update(
                    Customer,
                    (Customer.id == customer.id, Customer.last_active < now),
                    {"last_active": now},
                )
                if customer.last_active < now:
                    customer.last_active = now
                return customer

            try:
                customer = self.store.insert(
                    Customer,
                    phone_number=phone_number,
                    name=name,
                    conversation_state="greeting",
                    needs_human_support=False,
                    is_online=True,
                    meta={},
                    created_at=now,
                    updated_at=now,
                    last_active=now,
                )
            except IntegrityError:
                # Created concurrently by another delivery
                customer = self.store.select_one(Customer, Customer.phone_number == phone_number)
                if customer is None:
                    raise
            else:
                logger.info("[SESSION] New customer %s", mask_phone(phone_number))
            return customer
        except SQLAlchemyError as e:
            raise RuntimeError(f"Failed to load or create customer: {e}") from e

    def update_state(self, phone_number: str, state: str, needs_human: Optional[bool] = None) -> None:
        values = {"conversation_state": state, "updated_at": self.clock()}
        if needs_human is not None:
            values["needs_human_support"] = needs_human
        try:
            self.store.update(Customer, (Customer.phone_number == phone_number,), values)
        except SQLAlchemyError:
            logger.exception("[SESSION] Failed to update state for %s", mask_phone(phone_number))

    def update_language_preference(self, phone_number: str, language: str) -> None:
        """Store the customer's preferred reply language in their metadata."""
        customer = self.store.select_one(Customer, Customer.phone_number == phone_number)
        if customer is None:
            return
        meta = dict(customer.meta or {})
        meta["language_preference"] = language
        self.store.update(
            Customer,
            (Customer.id == customer.id,),
            {"meta": meta, "updated_at": self.clock()},
        )
        logger.info("[SESSION] Language preference for %s set to %s", mask_phone(phone_number), language)

    # -- sessions -----------------------------------------------------------

    def _current_session(self, phone_number: str) -> Optional[ConversationSession]:
        since = self.clock() - self.session_window
        return self.store.select_one(
            ConversationSession,
            ConversationSession.phone_number == phone_number,
            ConversationSession.resolution_status == ResolutionStatus.ongoing,
            ConversationSession.session_start >= since,
            order_by=(ConversationSession.session_start.desc(),),
        )

    def get_or_create_session(self, customer: Customer) -> ConversationSession:
        """Return the ongoing session from the current window or start a new one."""
        try:
            session = self._current_session(customer.phone_number)
            if session is not None:
                return session

            session = self.store.insert(
                ConversationSession,
                customer_id=customer.id,
                phone_number=customer.phone_number,
                session_start=self.clock(),
                is_human_mode=False,
                resolution_status=ResolutionStatus.ongoing,
            )
            logger.info("[SESSION] Started session %s for %s", session.id, mask_phone(customer.phone_number))
            return session
        except SQLAlchemyError as e:
            raise RuntimeError(f"Failed to load or create session: {e}") from e

    def escalate(self, phone_number: str, reason: str) -> None:
        """Hand the conversation over to a human agent."""
        now = self.clock()
        self.store.update(
            Customer,
            (Customer.phone_number == phone_number,),
            {"needs_human_support": True, "conversation_state": "awaiting_human", "updated_at": now},
        )
        self.store.update(
            ConversationSession,
            (
                ConversationSession.phone_number == phone_number,
                ConversationSession.resolution_status == ResolutionStatus.ongoing,
            ),
            {"is_human_mode": True, "resolution_status": ResolutionStatus.escalated, "escalation_reason": reason},
        )
        logger.warning("[SESSION] Escalated %s to human support: %s", mask_phone(phone_number), reason)

    def end_session(self, phone_number: str, status: ResolutionStatus = ResolutionStatus.resolved,
                    summary: Optional[str] = None) -> int:
        status = ResolutionStatus(status)
        if status == ResolutionStatus.ongoing:
            raise ValueError("a session cannot be ended as ongoing")
        try:
            return self.store.update(
                ConversationSession,
                (
                    ConversationSession.phone_number == phone_number,
                    ConversationSession.resolution_status == ResolutionStatus.ongoing,
                ),
                {"session_end": self.clock(), "resolution_status": status, "conversation_summary": summary},
            )
        except SQLAlchemyError:
            logger.exception("[SESSION] Failed to end session for %s", mask_phone(phone_number))
            return 0

    # -- messages -----------------------------------------------------------

    def _save_message(self, customer: Customer, content: str, direction: MessageDirection,
                      sender: SenderType, **extra) -> Message:
        try:
            message = self.store.insert(
                Message,
                customer_id=customer.id,
                phone_number=customer.phone_number,
                message_content=content,
                direction=direction,
                sender_type=sender,
                timestamp=self.clock(),
                **extra,
            )
        except SQLAlchemyError as e:
            raise RuntimeError(f"Failed to save {direction.value} message: {e}") from e

        try:
            session = self._current_session(customer.phone_number)
            if session is not None:
                self.store.increment(
                    ConversationSession,
                    (ConversationSession.id == session.id,),
                    "total_messages", _COUNTER_BY_SENDER[sender],
                )
        except SQLAlchemyError:
            logger.exception("[SESSION] Failed to update message counters for %s", mask_phone(customer.phone_number))
        return message

    def save_incoming_message(self, customer: Customer, content: str, message_type: str = "text",
                              whatsapp_message_id: Optional[str] = None) -> Message:
        return self._save_message(
            customer, content, MessageDirection.incoming, SenderType.customer,
            message_type=message_type, status="delivered", whatsapp_message_id=whatsapp_message_id,
        )

    def save_outgoing_message(self, customer: Customer, content: str, response_time_ms: Optional[int] = None,
                              sender: SenderType = SenderType.ai) -> Message:
        return self._save_message(
            customer, content, MessageDirection.outgoing, SenderType(sender),
            message_type="text", status="sent", ai_response_time=response_time_ms,
        )

    def get_recent_messages(self, phone_number: str, limit: Optional[int] = None) -> List[Message]:
        """Most recent messages for a phone number, oldest first."""
        try:
            rows = self.store.select(
                Message,
                Message.phone_number == phone_number,
                order_by=(Message.timestamp.desc(), Message.id.desc()),
                limit=limit or self.history_limit,
            )
        except SQLAlchemyError:
            logger.exception("[SESSION] Failed to get recent messages for %s", mask_phone(phone_number))
            return []
        return list(reversed(rows))

    def build_context(self, customer: Customer) -> ConversationContext:
        session = self.get_or_create_session(customer)
        # One extra row: the inbound message being answered is already stored
        return ConversationContext(
            customer=customer,
            recent_messages=self.get_recent_messages(customer.phone_number, limit=self.history_limit + 1),
            current_session=session,
            preferred_language=customer.preferences.language_preference,
        )

    # -- processing lock ----------------------------------------------------

    def check_protection(self, phone_number: str) -> bool:
        """True while an unexpired processing lock exists for this phone number."""
        return self.lock.is_locked(phone_number)

    def create_protection(self, phone_number: str, session_ref: Optional[str] = None,
                          duration_seconds: Optional[int] = None) -> bool:
        acquired = self.lock.acquire(phone_number, session_ref or "", duration_seconds or self.lock_seconds)
        if acquired:
            logger.debug("[LOCK] Acquired lock for %s", mask_phone(phone_number))
        else:
            logger.info("[LOCK] Lock already held for %s", mask_phone(phone_number))
        return acquired

    def release_protection(self, phone_number: str, session_ref: Optional[str] = None) -> bool:
        """Release the lock if it is still held under `session_ref`.

        A lock that expired and was taken over by another delivery is left alone.
        """
        released = self.lock.release(phone_number, session_ref or "")
        if released:
            logger.debug("[LOCK] Released lock for %s", mask_phone(phone_number))
        else:
            logger.warning("[LOCK] Lock for %s expired before release", mask_phone(phone_number))
        return released

    @contextmanager
    def protection(self, phone_number: str, session_ref: Optional[str] = None):
        """Hold the processing lock for the duration of the block.

        Yields whether the lock was acquired; an acquired lock is always released.
        """
        acquired = self.create_protection(phone_number, session_ref)
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    self.release_protection(phone_number, session_ref)
                except Exception:
                    logger.exception("[LOCK] Failed to release lock for %s", mask_phone(phone_number))
