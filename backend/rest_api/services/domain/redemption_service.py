"""
Discount Redemption Engine.

Validates discount codes and redeems them against the usage limit and the
per-customer limit.

Validation is a pure read and short-circuits in this order:
    not-found -> inactive -> outside-window -> exhausted -> customer-exhausted -> valid

Redemption is serialized per code (one lock per event id) and relies on a
conditional UPDATE for the usage limit, so two concurrent redemptions of
the last use cannot both succeed: the first writer wins, the other gets
"exhausted" and nothing of it is persisted.

The per-customer limit is checked under the same per-code lock. Callers that
redeem inside their own transaction hold redemption_lock() until they commit,
so the next redemption of the code counts the committed record. The limit is
only serialized within one process; deployments running several workers
share the usage limit guarantee (enforced by the database) but not this one.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.logging import get_logger, mask_phone
from shared.infrastructure.db import SessionLocal
from rest_api.models import DiscountEvent
from rest_api.repositories.discount import DiscountRepository

logger = get_logger(__name__)


class RedemptionStatus(str, Enum):
    """Outcome of validating or redeeming a discount code."""

    VALID = "valid"
    NOT_FOUND = "not-found"
    INACTIVE = "inactive"
    OUTSIDE_WINDOW = "outside-window"
    EXHAUSTED = "exhausted"
    CUSTOMER_EXHAUSTED = "customer-exhausted"


STATUS_MESSAGES: dict[RedemptionStatus, str] = {
    RedemptionStatus.VALID: "Código válido",
    RedemptionStatus.NOT_FOUND: "Código no válido",
    RedemptionStatus.INACTIVE: "Código no válido o expirado",
    RedemptionStatus.OUTSIDE_WINDOW: "El código no está vigente en esta fecha",
    RedemptionStatus.EXHAUSTED: "Código agotado",
    RedemptionStatus.CUSTOMER_EXHAUSTED: "Ya has usado este código el máximo de veces permitidas",
}


class RedemptionError(Exception):
    """Base error of the redemption engine."""
    pass


class PersistenceFailure(RedemptionError):
    """The counter increment or the redemption record could not be persisted."""

    def __init__(self, event_id: int, message: str):
        self.event_id = event_id
        super().__init__(message)


@dataclass(frozen=True)
class RedemptionRecord:
    """
    One use of a code, as appended to the redemption log.

    Attributes:
        code_used: The code as entered by the customer.
        discount_applied_cents: Discount granted, in cents.
        customer_phone: Customer identity for the per-customer limit.
        order_id: Order the code was applied to, when known.
    """

    code_used: str
    discount_applied_cents: int = 0
    customer_phone: str | None = None
    order_id: int | None = None


@dataclass(frozen=True)
class RedemptionResult:
    """
    Typed result of validate/redeem. Rejections are results, never exceptions.
    """

    status: RedemptionStatus
    event_id: int | None = None
    store_id: int | None = None
    title: str | None = None
    code: str | None = None
    discount_percent: int | None = None
    discount_amount_cents: int | None = None
    applicable_product_ids: tuple[int, ...] = ()
    redemption_id: int | None = None
    usage_count: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is RedemptionStatus.VALID

    @property
    def message(self) -> str:
        """User-facing text for the status."""
        return STATUS_MESSAGES[self.status]

    def compute_discount(self, lines: Iterable[tuple[int, int]]) -> int:
        """
        Discount in cents for a set of order lines.

        Args:
            lines: (product_id, line subtotal in cents) pairs.

        A percentage takes precedence over a fixed amount. When applicable
        products are set, only their lines count; a fixed amount never
        exceeds the subtotal it applies to.
        """
        if not self.ok:
            return 0
        applicable = set(self.applicable_product_ids)
        base = sum(
            subtotal for product_id, subtotal in lines
            if not applicable or product_id in applicable
        )
        if base <= 0:
            return 0
        if self.discount_percent:
            return base * self.discount_percent // 100
        if self.discount_amount_cents:
            return min(self.discount_amount_cents, base)
        return 0

    def to_event_payload(self) -> dict[str, Any]:
        """Public description of the discount (validar-codigo response)."""
        return {
            "id": self.event_id,
            "titulo": self.title,
            "descuento_porcentaje": self.discount_percent,
            "descuento_monto_cents": self.discount_amount_cents,
            "productos_aplicables": list(self.applicable_product_ids),
        }

    @classmethod
    def rejected(cls, status: RedemptionStatus, event: DiscountEvent | None = None) -> "RedemptionResult":
        if event is None:
            return cls(status=status)
        return cls(status=status, event_id=event.id, store_id=event.store_id, code=event.code)

    @classmethod
    def accepted(
        cls,
        event: DiscountEvent,
        redemption_id: int | None = None,
        usage_count: int | None = None,
    ) -> "RedemptionResult":
        return cls(
            status=RedemptionStatus.VALID,
            event_id=event.id,
            store_id=event.store_id,
            title=event.title,
            code=event.code,
            discount_percent=event.discount_percent,
            discount_amount_cents=event.discount_amount_cents,
            applicable_product_ids=tuple(event.product_ids),
            redemption_id=redemption_id,
            usage_count=usage_count if usage_count is not None else event.usage_count,
        )


@dataclass
class _CodeLock:
    """Per-code lock plus the number of holders and waiters using it."""

    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class RedemptionEngine:
    """
    Validates and redeems discount codes.

    Usage:
        engine = RedemptionEngine()
        result = engine.validate(store_id=1, code="PROMO10", customer_phone="+5491100000000")
        if result.ok:
            result = engine.redeem(result.event_id, RedemptionRecord(code_used="PROMO10"))

    Transactions:
        With db=None the engine opens a session from session_factory and
        commits (or rolls back) itself. With a caller session the effects
        join the caller's transaction, which the caller commits while
        holding redemption_lock():

            with engine.redemption_lock(event_id):
                result = engine.redeem(event_id, record, db=db)
                db.commit()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        today: Callable[[], date] = date.today,
    ):
        self._session_factory = session_factory
        self._today = today
        self._locks: dict[int, _CodeLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def lock_count(self) -> int:
        """Number of codes with a lock currently held or awaited."""
        with self._locks_guard:
            return len(self._locks)

    @contextmanager
    def redemption_lock(self, code_id: int) -> Iterator[None]:
        """
        Serialize redemptions of one code for the duration of the block.

        Reentrant, so redeem() called inside the block does not deadlock.
        The entry is dropped once nobody holds or waits on it.
        """
        with self._locks_guard:
            entry = self._locks.get(code_id)
            if entry is None:
                entry = self._locks[code_id] = _CodeLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[code_id]

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(
        self,
        store_id: int,
        code: str,
        customer_phone: str | None = None,
        *,
        db: Session | None = None,
    ) -> RedemptionResult:
        """
        Check whether a code can be redeemed right now. Never writes.
        """
        if db is not None:
            return self._validate(DiscountRepository(db), store_id, code, customer_phone)

        session = self._session_factory()
        try:
            return self._validate(DiscountRepository(session), store_id, code, customer_phone)
        finally:
            session.close()

    def _validate(
        self,
        repo: DiscountRepository,
        store_id: int,
        code: str,
        customer_phone: str | None,
    ) -> RedemptionResult:
        event = repo.find_discount_code(store_id, code or "")
        if event is None:
            logger.info("Discount code not found", store_id=store_id)
            return RedemptionResult.rejected(RedemptionStatus.NOT_FOUND)

        status = self._availability(event)
        if status is None and self._usage_exhausted(event):
            status = RedemptionStatus.EXHAUSTED
        if status is None:
            status = self._customer_status(repo, event, customer_phone)

        if status is not None:
            logger.info(
                "Discount code rejected",
                store_id=store_id,
                event_id=event.id,
                reason=status.value,
                customer=mask_phone(customer_phone),
            )
            return RedemptionResult.rejected(status, event)

        return RedemptionResult.accepted(event)

    # =========================================================================
    # Redemption
    # =========================================================================

    def redeem(
        self,
        code_id: int,
        record: RedemptionRecord,
        *,
        db: Session | None = None,
    ) -> RedemptionResult:
        """
        Redeem a code: increment its usage counter and append the redemption
        record in one transaction.

        Re-checks active flag, date window and per-customer limit under the
        per-code lock; the usage limit is enforced by the conditional increment.

        Raises:
            PersistenceFailure: If the database rejected the write. Nothing
                of the redemption is persisted.
        """
        owned = db is None
        session = self._session_factory() if owned else db
        try:
            with self.redemption_lock(code_id):
                result = self._redeem_locked(DiscountRepository(session), code_id, record)
                if owned:
                    if result.ok:
                        session.commit()
                    else:
                        session.rollback()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(
                "Failed to persist redemption",
                event_id=code_id,
                customer=mask_phone(record.customer_phone),
                error=str(e),
                exc_info=True,
            )
            raise PersistenceFailure(code_id, f"No se pudo registrar el uso del código: {e}") from e
        finally:
            if owned:
                session.close()

        if result.ok:
            logger.info(
                "Discount code redeemed",
                event_id=code_id,
                store_id=result.store_id,
                usage_count=result.usage_count,
                redemption_id=result.redemption_id,
                customer=mask_phone(record.customer_phone),
            )
        else:
            logger.info(
                "Discount code redemption rejected",
                event_id=code_id,
                reason=result.status.value,
                customer=mask_phone(record.customer_phone),
            )
        return result

    def _redeem_locked(
        self,
        repo: DiscountRepository,
        code_id: int,
        record: RedemptionRecord,
    ) -> RedemptionResult:
        event = repo.get(code_id)
        if event is None:
            return RedemptionResult.rejected(RedemptionStatus.NOT_FOUND)

        status = self._availability(event) or self._customer_status(repo, event, record.customer_phone)
        if status is not None:
            return RedemptionResult.rejected(status, event)

        usage_count = repo.increment_usage(code_id)
        if usage_count is None:
            return RedemptionResult.rejected(RedemptionStatus.EXHAUSTED, event)

        redemption_id = repo.append_redemption(code_id, record)
        return RedemptionResult.accepted(event, redemption_id=redemption_id, usage_count=usage_count)

    # =========================================================================
    # Rules
    # =========================================================================

    def _availability(self, event: DiscountEvent) -> RedemptionStatus | None:
        """Active flag and date window (inclusive bounds, open bounds unbounded)."""
        if not event.is_active:
            return RedemptionStatus.INACTIVE
        today = self._today()
        if event.start_date is not None and today < event.start_date:
            return RedemptionStatus.OUTSIDE_WINDOW
        if event.end_date is not None and today > event.end_date:
            return RedemptionStatus.OUTSIDE_WINDOW
        return None

    @staticmethod
    def _usage_exhausted(event: DiscountEvent) -> bool:
        return event.usage_limit is not None and event.usage_count >= event.usage_limit

    @staticmethod
    def _customer_status(
        repo: DiscountRepository,
        event: DiscountEvent,
        customer_phone: str | None,
    ) -> RedemptionStatus | None:
        if not customer_phone or not event.per_customer_limit:
            return None
        used = repo.count_redemptions(event.id, customer_phone)
        if used >= event.per_customer_limit:
            return RedemptionStatus.CUSTOMER_EXHAUSTED
        return None
