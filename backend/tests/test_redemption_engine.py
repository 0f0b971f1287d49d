"""
Tests for the discount redemption engine.

Tests verify:
- Validation order and rejection reasons
- Inclusive date window
- Per-customer limit
- Usage limit under concurrent redemptions (exactly K successes)
- Per-customer limit when redemptions join the caller transaction
- Nothing is persisted when the write fails
"""

import threading
import time
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from rest_api.models import Base, DiscountEvent, DiscountRedemption, Order, Store
from rest_api.repositories.discount import DiscountRepository
from rest_api.services.domain import (
    PersistenceFailure,
    RedemptionEngine,
    RedemptionRecord,
    RedemptionStatus,
)
from rest_api.services.domain.order_service import DiscountRejectedError, OrderService
from shared.utils.schemas import OrderCreate, OrderItemInput


def _redemptions(db, event_id: int) -> int:
    return db.scalar(
        select(func.count()).select_from(DiscountRedemption).where(DiscountRedemption.event_id == event_id)
    )


class TestValidate:

    def test_valid_code(self, redemption_engine, seed_discount, seed_store):
        result = redemption_engine.validate(seed_store.id, "PROMO10", "+5491100000001")

        assert result.ok
        assert result.status is RedemptionStatus.VALID
        assert result.event_id == seed_discount.id
        assert result.discount_percent == 10
        assert result.message == "Código válido"

    def test_code_is_trimmed(self, redemption_engine, seed_discount, seed_store):
        assert redemption_engine.validate(seed_store.id, "  PROMO10 ").ok

    def test_unknown_code(self, redemption_engine, seed_discount, seed_store):
        result = redemption_engine.validate(seed_store.id, "NOPE")

        assert result.status is RedemptionStatus.NOT_FOUND
        assert result.event_id is None

    def test_code_of_another_store_is_not_found(self, redemption_engine, db_session, seed_discount):
        other = Store(name="Otra", slug="otra")
        db_session.add(other)
        db_session.commit()

        assert redemption_engine.validate(other.id, "PROMO10").status is RedemptionStatus.NOT_FOUND

    def test_empty_code(self, redemption_engine, seed_store):
        assert redemption_engine.validate(seed_store.id, "").status is RedemptionStatus.NOT_FOUND

    def test_inactive_code(self, redemption_engine, db_session, seed_discount, seed_store):
        seed_discount.is_active = False
        db_session.commit()

        assert redemption_engine.validate(seed_store.id, "PROMO10").status is RedemptionStatus.INACTIVE

    @pytest.mark.parametrize("offset, expected", [
        (-6, RedemptionStatus.OUTSIDE_WINDOW),
        (-5, RedemptionStatus.VALID),
        (5, RedemptionStatus.VALID),
        (6, RedemptionStatus.OUTSIDE_WINDOW),
    ])
    def test_date_window_is_inclusive(self, engine_factory, today, seed_discount, seed_store, offset, expected):
        engine = engine_factory(today + timedelta(days=offset))

        assert engine.validate(seed_store.id, "PROMO10").status is expected

    def test_open_window(self, engine_factory, today, db_session, seed_discount, seed_store):
        seed_discount.start_date = None
        seed_discount.end_date = None
        db_session.commit()
        engine = engine_factory(today + timedelta(days=3650))

        assert engine.validate(seed_store.id, "PROMO10").ok

    def test_exhausted(self, redemption_engine, db_session, seed_discount, seed_store):
        seed_discount.usage_count = 3
        db_session.commit()

        assert redemption_engine.validate(seed_store.id, "PROMO10").status is RedemptionStatus.EXHAUSTED

    def test_inactive_checked_before_exhausted(self, redemption_engine, db_session, seed_discount, seed_store):
        seed_discount.usage_count = 3
        seed_discount.is_active = False
        db_session.commit()

        assert redemption_engine.validate(seed_store.id, "PROMO10").status is RedemptionStatus.INACTIVE

    def test_validate_never_writes(self, redemption_engine, db_session, seed_discount, seed_store):
        for _ in range(5):
            redemption_engine.validate(seed_store.id, "PROMO10", "+5491100000001")

        db_session.refresh(seed_discount)
        assert seed_discount.usage_count == 0
        assert _redemptions(db_session, seed_discount.id) == 0


class TestRedeem:

    def test_promo10_scenario(self, redemption_engine, db_session, seed_discount, seed_store):
        """Three uses allowed, one per customer: a repeat customer and the fourth customer are rejected."""
        phones = ["+5491100000001", "+5491100000002", "+5491100000003"]
        for n, phone in enumerate(phones, start=1):
            result = redemption_engine.redeem(
                seed_discount.id,
                RedemptionRecord(code_used="PROMO10", discount_applied_cents=500, customer_phone=phone),
            )
            assert result.ok
            assert result.usage_count == n
            assert result.redemption_id is not None

        repeat = redemption_engine.redeem(
            seed_discount.id, RedemptionRecord(code_used="PROMO10", customer_phone=phones[0])
        )
        fourth = redemption_engine.redeem(
            seed_discount.id, RedemptionRecord(code_used="PROMO10", customer_phone="+5491100000004")
        )

        assert repeat.status is RedemptionStatus.CUSTOMER_EXHAUSTED
        assert fourth.status is RedemptionStatus.EXHAUSTED
        db_session.expire_all()
        assert db_session.get(DiscountEvent, seed_discount.id).usage_count == 3
        assert _redemptions(db_session, seed_discount.id) == 3

    def test_customer_limit_reported_by_validate(self, redemption_engine, seed_discount, seed_store):
        phone = "+5491100000001"
        redemption_engine.redeem(seed_discount.id, RedemptionRecord(code_used="PROMO10", customer_phone=phone))

        result = redemption_engine.validate(seed_store.id, "PROMO10", phone)

        assert result.status is RedemptionStatus.CUSTOMER_EXHAUSTED
        assert redemption_engine.validate(seed_store.id, "PROMO10", "+5491100000009").ok

    def test_anonymous_redemptions_only_count_against_usage_limit(self, redemption_engine, seed_discount):
        results = [
            redemption_engine.redeem(seed_discount.id, RedemptionRecord(code_used="PROMO10"))
            for _ in range(4)
        ]

        assert [r.ok for r in results] == [True, True, True, False]
        assert results[-1].status is RedemptionStatus.EXHAUSTED

    def test_unlimited_code(self, redemption_engine, db_session, seed_discount):
        seed_discount.usage_limit = None
        db_session.commit()

        for _ in range(10):
            assert redemption_engine.redeem(seed_discount.id, RedemptionRecord(code_used="PROMO10")).ok

    def test_code_locks_are_dropped_after_use(self, redemption_engine, db_session, seed_discount):
        seed_discount.usage_limit = None
        db_session.commit()

        for n in range(5):
            redemption_engine.redeem(seed_discount.id, RedemptionRecord(code_used="PROMO10"))
            redemption_engine.redeem(1000 + n, RedemptionRecord(code_used="X"))

        assert redemption_engine.lock_count == 0

    def test_redemption_lock_is_reentrant(self, redemption_engine, db_session, seed_discount):
        with redemption_engine.redemption_lock(seed_discount.id):
            result = redemption_engine.redeem(
                seed_discount.id, RedemptionRecord(code_used="PROMO10"), db=db_session
            )
            assert redemption_engine.lock_count == 1
            db_session.commit()

        assert result.ok
        assert redemption_engine.lock_count == 0

    def test_redeem_unknown_event(self, redemption_engine, seed_store):
        result = redemption_engine.redeem(9999, RedemptionRecord(code_used="X"))

        assert result.status is RedemptionStatus.NOT_FOUND

    def test_redeem_rechecks_window(self, engine_factory, today, seed_discount):
        engine = engine_factory(today + timedelta(days=30))

        result = engine.redeem(seed_discount.id, RedemptionRecord(code_used="PROMO10"))

        assert result.status is RedemptionStatus.OUTSIDE_WINDOW

    def test_redeem_in_caller_transaction(self, redemption_engine, db_session, seed_discount):
        result = redemption_engine.redeem(
            seed_discount.id, RedemptionRecord(code_used="PROMO10"), db=db_session
        )
        assert result.ok

        db_session.rollback()

        db_session.expire_all()
        assert db_session.get(DiscountEvent, seed_discount.id).usage_count == 0
        assert _redemptions(db_session, seed_discount.id) == 0

    def test_persistence_failure_leaves_no_trace(self, redemption_engine, db_session, seed_discount):
        with patch.object(
            DiscountRepository,
            "append_redemption",
            side_effect=OperationalError("INSERT", {}, Exception("disk full")),
        ):
            with pytest.raises(PersistenceFailure) as exc_info:
                redemption_engine.redeem(
                    seed_discount.id, RedemptionRecord(code_used="PROMO10", customer_phone="+5491100000001")
                )

        assert exc_info.value.event_id == seed_discount.id
        db_session.expire_all()
        assert db_session.get(DiscountEvent, seed_discount.id).usage_count == 0
        assert _redemptions(db_session, seed_discount.id) == 0


class TestComputeDiscount:

    def test_percentage_of_whole_order(self, redemption_engine, seed_discount, seed_store):
        result = redemption_engine.validate(seed_store.id, "PROMO10")

        assert result.compute_discount([(1, 10_000), (2, 5_000)]) == 1_500

    def test_percentage_rounds_down(self, redemption_engine, seed_discount, seed_store):
        result = redemption_engine.validate(seed_store.id, "PROMO10")

        assert result.compute_discount([(1, 999)]) == 99

    def test_only_applicable_products(self, redemption_engine, db_session, seed_discount, seed_store):
        seed_discount.applicable_product_ids = "2,3"
        db_session.commit()
        result = redemption_engine.validate(seed_store.id, "PROMO10")

        assert result.compute_discount([(1, 10_000), (2, 5_000)]) == 500

    def test_fixed_amount_capped_at_subtotal(self, redemption_engine, db_session, seed_discount, seed_store):
        seed_discount.discount_percent = None
        seed_discount.discount_amount_cents = 2_000
        db_session.commit()
        result = redemption_engine.validate(seed_store.id, "PROMO10")

        assert result.compute_discount([(1, 1_500)]) == 1_500
        assert result.compute_discount([(1, 5_000)]) == 2_000

    def test_rejected_result_gives_no_discount(self, redemption_engine, seed_store):
        result = redemption_engine.validate(seed_store.id, "NOPE")

        assert result.compute_discount([(1, 10_000)]) == 0


class TestConcurrentRedemption:
    """Many threads racing for the last uses of a code on a file database."""

    @pytest.fixture
    def file_sessions(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'redemptions.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        yield factory
        engine.dispose()

    @pytest.mark.parametrize("limit, contenders", [(1, 10), (5, 20)])
    def test_exactly_limit_successes(self, file_sessions, today, limit, contenders):
        with file_sessions() as db:
            store = Store(name="Concurrente", slug="concurrente")
            db.add(store)
            db.flush()
            event = DiscountEvent(
                store_id=store.id,
                title="Última unidad",
                code="LAST",
                discount_percent=50,
                usage_limit=limit,
                per_customer_limit=None,
            )
            db.add(event)
            db.commit()
            event_id = event.id

        engine = RedemptionEngine(file_sessions, today=lambda: today)
        results = []
        results_lock = threading.Lock()
        start = threading.Barrier(contenders)

        def contender(n: int):
            start.wait()
            result = engine.redeem(
                event_id,
                RedemptionRecord(code_used="LAST", customer_phone=f"+54911000000{n:02d}"),
            )
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=contender, args=(n,)) for n in range(contenders)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        accepted = [r for r in results if r.ok]
        rejected = [r for r in results if not r.ok]
        assert len(accepted) == limit
        assert all(r.status is RedemptionStatus.EXHAUSTED for r in rejected)
        assert sorted(r.usage_count for r in accepted) == list(range(1, limit + 1))

        with file_sessions() as db:
            assert db.get(DiscountEvent, event_id).usage_count == limit
            assert _redemptions(db, event_id) == limit

    def test_same_customer_racing_is_limited(self, file_sessions, today):
        with file_sessions() as db:
            store = Store(name="Concurrente", slug="concurrente")
            db.add(store)
            db.flush()
            event = DiscountEvent(
                store_id=store.id,
                title="Uno por cliente",
                code="ONCE",
                discount_percent=10,
                usage_limit=None,
                per_customer_limit=1,
            )
            db.add(event)
            db.commit()
            event_id = event.id

        engine = RedemptionEngine(file_sessions, today=lambda: today)
        results = []
        start = threading.Barrier(8)

        def contender():
            start.wait()
            results.append(
                engine.redeem(event_id, RedemptionRecord(code_used="ONCE", customer_phone="+5491100000001"))
            )

        threads = [threading.Thread(target=contender) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.ok for r in results) == 1
        assert {r.status for r in results if not r.ok} == {RedemptionStatus.CUSTOMER_EXHAUSTED}

    @staticmethod
    def _once_per_customer(file_sessions) -> tuple[int, int]:
        with file_sessions() as db:
            store = Store(name="Transaccional", slug="transaccional")
            db.add(store)
            db.flush()
            event = DiscountEvent(
                store_id=store.id,
                title="Uno por cliente",
                code="ONCE",
                discount_percent=10,
                usage_limit=None,
                per_customer_limit=1,
            )
            db.add(event)
            db.commit()
            return store.id, event.id

    def test_same_customer_in_caller_transactions_is_limited(self, file_sessions, today):
        _, event_id = self._once_per_customer(file_sessions)
        engine = RedemptionEngine(file_sessions, today=lambda: today)
        first_redeemed = threading.Event()
        results = {}

        def redeem_and_commit(name: str, delay: float):
            with file_sessions() as db:
                with engine.redemption_lock(event_id):
                    results[name] = engine.redeem(
                        event_id,
                        RedemptionRecord(code_used="ONCE", customer_phone="+5491100000001"),
                        db=db,
                    )
                    first_redeemed.set()
                    time.sleep(delay)
                    db.commit()

        first = threading.Thread(target=redeem_and_commit, args=("first", 0.3))
        first.start()
        assert first_redeemed.wait(5)
        second = threading.Thread(target=redeem_and_commit, args=("second", 0))
        second.start()
        first.join()
        second.join()

        assert results["first"].status is RedemptionStatus.VALID
        assert results["second"].status is RedemptionStatus.CUSTOMER_EXHAUSTED
        with file_sessions() as db:
            assert _redemptions(db, event_id) == 1
            assert db.get(DiscountEvent, event_id).usage_count == 1

    def test_same_customer_racing_orders_is_limited(self, file_sessions, today):
        store_id, event_id = self._once_per_customer(file_sessions)
        engine = RedemptionEngine(file_sessions, today=lambda: today)
        outcomes = []
        start = threading.Barrier(4)

        def place_order():
            data = OrderCreate(
                tienda_id=store_id,
                cliente_nombre="Ana",
                cliente_telefono="+5491100000001",
                items=[OrderItemInput(producto_id=1, cantidad=1, precio_unitario_cents=1000)],
                codigo_descuento="ONCE",
            )
            with file_sessions() as db:
                start.wait()
                try:
                    OrderService(db, engine=engine).create_order(data)
                    outcomes.append("ok")
                except DiscountRejectedError as e:
                    outcomes.append(e.result.status)

        threads = [threading.Thread(target=place_order) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert set(outcomes) - {"ok"} == {RedemptionStatus.CUSTOMER_EXHAUSTED}
        with file_sessions() as db:
            assert _redemptions(db, event_id) == 1
            assert db.scalar(select(func.count()).select_from(Order)) == 1
        assert engine.lock_count == 0
