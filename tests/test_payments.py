import pytest

from storefront.core.errors import ConflictError, NotFoundError
from storefront.db.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from storefront.services.orders import OrderService
from storefront.services.payments import PaymentService


@pytest.fixture()
def payments(db, side_effects):
    return PaymentService(db, side_effects)


@pytest.fixture()
def order(db, side_effects, seed):
    items = [{"product_id": seed.shirt_id, "quantity": 3}, {"product_id": seed.shoes_id, "quantity": 2}]
    return OrderService(db, side_effects).create(seed.business_id, seed.customer_id, items, PaymentMethod.ZELLE)


class TestCreatePayment:
    def test_amount_is_order_total(self, payments, order, seed, broadcaster):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.ZELLE, reference="ZL-1")

        assert payment.amount_cents == 8000
        assert payment.status == PaymentStatus.PENDING
        assert payment.currency == "USD"
        [(_, _, data)] = broadcaster.named("new_payment")
        assert data["amount_cents"] == 8000

    def test_order_of_other_tenant(self, payments, order, seed):
        with pytest.raises(NotFoundError):
            payments.create(seed.other_business_id, order.id, PaymentMethod.CASH)


class TestVerifyPayment:
    def test_end_to_end_confirms_order_with_single_events(self, payments, db, order, seed, broadcaster, channel):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.ZELLE, notes="sent from BofA")
        broadcaster.events.clear()

        verified = payments.verify(seed.business_id, payment.id, "owner@acme.test", PaymentStatus.VERIFIED,
                                   notes="matches statement")

        assert verified.status == PaymentStatus.VERIFIED
        assert verified.verified_by == "owner@acme.test"
        assert verified.verified_at is not None
        assert verified.notes == "sent from BofA\nVerification: matches statement"
        assert db.get(Order, order.id).status == OrderStatus.CONFIRMED
        assert broadcaster.names().count("payment_verified") == 1
        [(_, _, changed)] = broadcaster.named("order_status_changed")
        assert changed == {"order_id": order.id, "status": "CONFIRMED"}
        assert channel.sent == []

    def test_reverify_conflicts_without_side_effects(self, payments, db, order, seed, broadcaster):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.ZELLE)
        payments.verify(seed.business_id, payment.id, "a", PaymentStatus.VERIFIED, notes="first")
        broadcaster.events.clear()

        with pytest.raises(ConflictError):
            payments.verify(seed.business_id, payment.id, "b", PaymentStatus.VERIFIED, notes="second")

        db.expire_all()
        row = db.get(Payment, payment.id)
        assert row.notes == "\nVerification: first"
        assert row.verified_by == "a"
        assert broadcaster.events == []

    def test_verify_as_rejected_does_not_cascade(self, payments, db, order, seed, broadcaster):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.CASH)
        payments.verify(seed.business_id, payment.id, "a", PaymentStatus.REJECTED)

        assert db.get(Order, order.id).status == OrderStatus.PENDING
        assert broadcaster.named("order_status_changed") == []

    def test_cross_tenant_not_found(self, payments, order, seed):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.CASH)
        with pytest.raises(NotFoundError):
            payments.verify(seed.other_business_id, payment.id, "x", PaymentStatus.VERIFIED)


class TestRejectPayment:
    def test_reject_stamps_verifier(self, payments, db, order, seed, broadcaster):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.CASH)
        rejected = payments.reject(seed.business_id, payment.id, "owner@acme.test")

        assert rejected.status == PaymentStatus.REJECTED
        assert rejected.verified_by == "owner@acme.test"
        assert db.get(Order, order.id).status == OrderStatus.PENDING
        assert len(broadcaster.named("payment_verified")) == 1

    def test_reject_after_verify_conflicts(self, payments, order, seed):
        payment = payments.create(seed.business_id, order.id, PaymentMethod.CASH)
        payments.verify(seed.business_id, payment.id, "a", PaymentStatus.VERIFIED)
        with pytest.raises(ConflictError):
            payments.reject(seed.business_id, payment.id, "b")


class TestListPayments:
    def test_filters_and_meta(self, payments, order, seed):
        first = payments.create(seed.business_id, order.id, PaymentMethod.CASH)
        payments.create(seed.business_id, order.id, PaymentMethod.ZELLE)
        payments.reject(seed.business_id, first.id, "a")

        page = payments.list(seed.business_id, status=PaymentStatus.PENDING)
        assert [p.method for p in page["data"]] == [PaymentMethod.ZELLE]
        assert payments.list(seed.business_id, order_id=order.id)["meta"]["total"] == 2
        assert payments.list(seed.other_business_id)["meta"]["total"] == 0
