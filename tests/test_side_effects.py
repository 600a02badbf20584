from datetime import datetime

from storefront.db.models import OrderStatus, PaymentMethod
from storefront.services.orders import OrderService
from storefront.services.side_effects import (
    BROADCAST, INVALIDATE_CATALOG, NOTIFY_ORDER_STATUS, InlineSideEffects, KafkaSideEffects,
)


class RecordingSend:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, topic, key, value):
        if self.fail:
            raise RuntimeError("broker down")
        self.calls.append((topic, key, value))


class TestKafkaSideEffects:
    def test_tasks_keyed_by_tenant(self):
        send = RecordingSend()
        queue = KafkaSideEffects("storefront.side-effects", send=send)

        queue.broadcast(42, "new_order", {"created_at": datetime(2024, 5, 1, 12, 0)})
        queue.notify_order_status(42, 9, OrderStatus.SHIPPED)
        queue.invalidate_catalog(7)

        assert [(t, k) for t, k, _ in send.calls] == [
            ("storefront.side-effects", "42"), ("storefront.side-effects", "42"), ("storefront.side-effects", "7"),
        ]
        assert send.calls[0][2] == {"kind": BROADCAST, "business_id": 42, "event": "new_order",
                                    "data": {"created_at": "2024-05-01T12:00:00"}}
        assert send.calls[1][2] == {"kind": NOTIFY_ORDER_STATUS, "business_id": 42, "order_id": 9,
                                    "status": "SHIPPED"}
        assert send.calls[2][2] == {"kind": INVALIDATE_CATALOG, "business_id": 7}

    def test_publish_failure_is_swallowed(self):
        queue = KafkaSideEffects("t", send=RecordingSend(fail=True))
        queue.invalidate_catalog(1)


class TestInlineSideEffects:
    def test_dispatches_each_kind(self, dispatcher, broadcaster, redis, seed):
        queue = InlineSideEffects(dispatcher)
        redis.set("catalog:acme:x", "v")

        queue.broadcast(seed.business_id, "ping", {"a": 1})
        queue.invalidate_catalog(seed.business_id)

        assert broadcaster.events == [(seed.business_id, "ping", {"a": 1})]
        assert redis.store == {}

    def test_unknown_kind_is_ignored(self, dispatcher, broadcaster):
        InlineSideEffects(dispatcher).enqueue({"kind": "mystery", "business_id": 1})
        assert broadcaster.events == []

    def test_failing_cache_never_fails_the_order(self, db, dispatcher, redis, seed):
        def broken(*args, **kwargs):
            raise ConnectionError("redis down")
        redis.scan_iter = broken

        order = OrderService(db, InlineSideEffects(dispatcher)).create(
            seed.business_id, seed.customer_id, [{"product_id": seed.shirt_id, "quantity": 1}], PaymentMethod.CASH)
        assert order.id is not None
