from datetime import datetime, timedelta

import pytest

from factories import seed_order
from models.order import TERMINAL_STATUSES, BuyerInfo, OrderCreate, OrderStatus
from utils.errors import Conflict, InvalidTransition, NotFound, Unauthorized, ValidationError
from utils.ledger import derive_fresh
from utils.lifecycle import TRANSITIONS, Trigger, apply_transition
from utils.order_service import (
    cancel_order,
    complete_after_grace,
    confirm_receipt,
    create_order,
    delete_order,
    get_order,
    get_orders,
    mark_delivered,
    order_stats,
    record_payment,
)
from utils.order_timeline import get_order_timeline

T0 = datetime(2026, 3, 1)


def delivery(**overrides):
    info = {
        "destination": "Mwenge, Dar es Salaam",
        "carrier": "Kilimanjaro Express",
        "estimated_arrival": (T0 + timedelta(days=2)).isoformat(),
        "tracking_number": "KX-1182",
        "receipts": ["receipts/kx-1182.jpg"],
    }
    info.update(overrides)
    return info


UNREACHABLE = [
    (source, target)
    for source in OrderStatus
    for target in OrderStatus
    if target not in TRANSITIONS[source]
]


@pytest.mark.parametrize("source,target", UNREACHABLE)
async def test_unreachable_transition_is_rejected_and_changes_nothing(store, source, target):
    order = await seed_order(store, status=source)

    with pytest.raises(InvalidTransition) as exc:
        await apply_transition(store, order, target, Trigger.SELLER_DELETED, actor_role="test")

    assert exc.value.current == source.value
    assert exc.value.requested == target.value
    assert ("terminal" in exc.value.reason) == (source in TERMINAL_STATUSES)
    stored = await store.find_order(order.id)
    assert stored == order
    assert await get_order_timeline(store, order.id) == []


async def test_trigger_must_match_the_edge(store):
    order = await seed_order(store, status=OrderStatus.DELIVERED)

    # delivered -> completed exists, but not for an admin verdict
    with pytest.raises(InvalidTransition):
        await apply_transition(store, order, OrderStatus.COMPLETED, Trigger.ADMIN_RELEASED, actor_role="admin")


async def test_lost_conditional_update_is_conflict(store, monkeypatch):
    order = await seed_order(store)

    async def stale_update(order_id, expected_status, changes):
        return None

    monkeypatch.setattr(store, "update_order", stale_update)

    with pytest.raises(Conflict):
        await cancel_order(store, order.id, requester_id="seller-1", now=T0)


# ------------------------------------------------------
# create / query
# ------------------------------------------------------

async def test_create_order_sets_expiry_and_timeline(store, seller):
    data = OrderCreate(
        amount=25_000,
        product_name="Kitenge ",
        buyer=BuyerInfo(name="Juma", phone="0754 000 111"),
    )

    order = await create_order(store, seller, data, now=T0)

    assert order.id.startswith("ORD-")
    assert order.status == OrderStatus.AWAITING_PAYMENT.value
    assert order.product_name == "Kitenge"
    assert order.expires_at == T0 + timedelta(hours=24)
    events = await get_order_timeline(store, order.id)
    assert [e["event"] for e in events] == ["ORDER_CREATED"]


async def test_create_order_below_minimum(store, seller):
    data = OrderCreate(amount=99, product_name="Pen", buyer=BuyerInfo(name="Juma", phone="0754000111"))

    with pytest.raises(ValidationError):
        await create_order(store, seller, data)


async def test_create_order_for_unknown_seller(store):
    data = OrderCreate(amount=500, product_name="Pen", buyer=BuyerInfo(name="Juma", phone="0754000111"))

    with pytest.raises(NotFound):
        await create_order(store, "ghost", data)


async def test_get_order_hides_other_sellers_orders(store):
    order = await seed_order(store, seller_id="seller-1")

    with pytest.raises(NotFound):
        await get_order(store, order.id, seller_id="seller-2")
    with pytest.raises(NotFound):
        await get_order(store, "ORD-NOPE")


async def test_get_orders_filters_and_rejects_unknown_status(store):
    await seed_order(store, status=OrderStatus.PAID)
    await seed_order(store, status=OrderStatus.COMPLETED)

    paid = await get_orders(store, "seller-1", status="paid")
    assert [o.status for o in paid] == ["paid"]

    with pytest.raises(ValidationError):
        await get_orders(store, "seller-1", status="in_escrow")


async def test_legacy_status_in_storage_is_not_mapped(store):
    order = await seed_order(store)
    store.orders[order.id]["status"] = "waiting_payment"

    with pytest.raises(ValidationError):
        await store.find_order(order.id)


async def test_order_stats(store):
    await seed_order(store, amount=1_000)
    await seed_order(store, amount=2_000, status=OrderStatus.PAID)
    await seed_order(store, amount=3_000, status=OrderStatus.COMPLETED)
    await seed_order(store, amount=4_000, status=OrderStatus.DELETED)

    stats = await order_stats(store, "seller-1")

    assert stats["total_orders"] == 3
    assert stats["total_sales"] == 5_000
    assert stats["by_status"]["awaiting_payment"] == {"count": 1, "value": 1_000}
    assert "deleted" not in stats["by_status"]


# ------------------------------------------------------
# payment capture
# ------------------------------------------------------

async def test_payment_moves_order_to_paid(store):
    order = await seed_order(store, created_at=T0)

    paid = await record_payment(store, order.id, amount=order.amount, payment_ref="MP-88", now=T0 + timedelta(hours=1))

    assert paid.status == OrderStatus.PAID.value
    assert paid.paid_at == T0 + timedelta(hours=1)
    assert paid.updated_at == paid.paid_at
    assert paid.payment_ref == "MP-88"


async def test_payment_replay_is_a_no_op(store):
    order = await seed_order(store, created_at=T0)
    first = await record_payment(store, order.id, now=T0 + timedelta(hours=1))

    again = await record_payment(store, order.id, now=T0 + timedelta(hours=2))
    after_delivery = await seed_order(store, status=OrderStatus.DELIVERED)
    untouched = await record_payment(store, after_delivery.id)

    assert again == first
    assert untouched == after_delivery
    events = await get_order_timeline(store, order.id)
    assert [e["event"] for e in events] == ["PAYMENT_CAPTURED"]


async def test_payment_amount_mismatch(store):
    order = await seed_order(store, created_at=T0)

    with pytest.raises(ValidationError) as exc:
        await record_payment(store, order.id, amount=order.amount - 1, now=T0)

    assert exc.value.context["expected"] == order.amount
    assert (await store.find_order(order.id)).status == OrderStatus.AWAITING_PAYMENT.value


async def test_non_string_payment_ref_leaves_order_untouched(store):
    order = await seed_order(store, created_at=T0)

    with pytest.raises(ValidationError) as exc:
        await record_payment(store, order.id, payment_ref=12345, now=T0 + timedelta(hours=1))

    assert exc.value.context["field"] == "payment_ref"
    assert store.orders[order.id]["status"] == OrderStatus.AWAITING_PAYMENT.value
    assert store.orders[order.id]["payment_ref"] is None
    assert len(await get_orders(store, "seller-1")) == 1
    assert (await derive_fresh(store, "seller-1")).in_escrow == 0


async def test_invalid_changes_are_rejected_before_the_write(store):
    order = await seed_order(store, created_at=T0)

    with pytest.raises(ValidationError):
        await apply_transition(
            store,
            order,
            OrderStatus.PAID,
            Trigger.PAYMENT_CAPTURED,
            actor_role="system",
            changes={"payment_ref": 12345},
            now=T0 + timedelta(hours=1),
        )

    assert await store.find_order(order.id) == order
    assert await get_order_timeline(store, order.id) == []
    assert (await derive_fresh(store, "seller-1")).in_escrow == 0


async def test_payment_after_link_expiry(store):
    order = await seed_order(store, created_at=T0)

    with pytest.raises(InvalidTransition):
        await record_payment(store, order.id, now=T0 + timedelta(hours=25))


@pytest.mark.parametrize("status", [OrderStatus.CANCELED, OrderStatus.DELETED])
async def test_payment_on_dead_order(store, status):
    order = await seed_order(store, status=status, created_at=T0)

    with pytest.raises(InvalidTransition):
        await record_payment(store, order.id, now=T0)


async def test_payment_for_unknown_order(store):
    with pytest.raises(NotFound):
        await record_payment(store, "ORD-MISSING")


# ------------------------------------------------------
# delivery
# ------------------------------------------------------

async def test_mark_delivered_records_evidence(store):
    order = await seed_order(store, status=OrderStatus.PAID)

    delivered = await mark_delivered(store, order.id, "seller-1", delivery(), now=T0)

    assert delivered.status == OrderStatus.DELIVERED.value
    assert delivered.delivered_at == T0
    assert delivered.delivery_info.carrier == "Kilimanjaro Express"
    assert delivered.delivery_info.receipts == ["receipts/kx-1182.jpg"]


async def test_mark_delivered_requires_every_field(store):
    order = await seed_order(store, status=OrderStatus.PAID)

    with pytest.raises(ValidationError) as exc:
        await mark_delivered(store, order.id, "seller-1", delivery(carrier="  ", receipts=[]), now=T0)

    assert exc.value.context["fields"] == ["carrier", "receipts"]
    assert (await store.find_order(order.id)).status == OrderStatus.PAID.value


async def test_mark_delivered_rejects_past_eta(store):
    order = await seed_order(store, status=OrderStatus.PAID)
    eta = (T0 - timedelta(days=1)).isoformat()

    with pytest.raises(ValidationError):
        await mark_delivered(store, order.id, "seller-1", delivery(estimated_arrival=eta), now=T0)


async def test_mark_delivered_missing_eta(store):
    order = await seed_order(store, status=OrderStatus.PAID)
    info = delivery()
    del info["estimated_arrival"]

    with pytest.raises(ValidationError):
        await mark_delivered(store, order.id, "seller-1", info, now=T0)


async def test_mark_delivered_by_other_seller(store):
    order = await seed_order(store, status=OrderStatus.PAID)

    with pytest.raises(Unauthorized):
        await mark_delivered(store, order.id, "seller-2", delivery(), now=T0)


async def test_mark_delivered_before_payment(store):
    order = await seed_order(store)

    with pytest.raises(InvalidTransition):
        await mark_delivered(store, order.id, "seller-1", delivery(), now=T0)


async def test_mark_delivered_twice(store):
    order = await seed_order(store, status=OrderStatus.PAID)
    await mark_delivered(store, order.id, "seller-1", delivery(), now=T0)

    with pytest.raises(InvalidTransition):
        await mark_delivered(store, order.id, "seller-1", delivery(), now=T0)


# ------------------------------------------------------
# completion
# ------------------------------------------------------

async def test_buyer_confirmation_completes_once(store):
    order = await seed_order(store, status=OrderStatus.DELIVERED, delivered_at=T0)

    done = await confirm_receipt(store, order.id, now=T0 + timedelta(hours=3))
    again = await confirm_receipt(store, order.id, now=T0 + timedelta(hours=4))

    assert done.status == OrderStatus.COMPLETED.value
    assert again.completed_at == T0 + timedelta(hours=3)


async def test_confirmation_before_delivery(store):
    order = await seed_order(store, status=OrderStatus.PAID)

    with pytest.raises(InvalidTransition):
        await confirm_receipt(store, order.id)


async def test_grace_completion_waits_for_the_period(store):
    order = await seed_order(store, status=OrderStatus.DELIVERED, delivered_at=T0)

    with pytest.raises(InvalidTransition):
        await complete_after_grace(store, order.id, now=T0 + timedelta(hours=71), grace_hours=72)

    done = await complete_after_grace(store, order.id, now=T0 + timedelta(hours=72), grace_hours=72)
    assert done.status == OrderStatus.COMPLETED.value


async def test_grace_completion_does_not_touch_disputed_orders(store):
    order = await seed_order(store, status=OrderStatus.DISPUTED, delivered_at=T0)

    with pytest.raises(InvalidTransition):
        await complete_after_grace(store, order.id, now=T0 + timedelta(days=30))


# ------------------------------------------------------
# cancel / delete
# ------------------------------------------------------

async def test_seller_cancels_unpaid_order(store):
    order = await seed_order(store)

    canceled = await cancel_order(store, order.id, requester_id="seller-1", reason="buyer changed mind", now=T0)

    assert canceled.status == OrderStatus.CANCELED.value
    assert canceled.cancel_reason == "buyer changed mind"
    assert canceled.canceled_at == T0


async def test_cancel_after_payment(store):
    order = await seed_order(store, status=OrderStatus.PAID)

    with pytest.raises(InvalidTransition):
        await cancel_order(store, order.id, requester_id="seller-1")


async def test_cancel_by_other_seller(store):
    order = await seed_order(store)

    with pytest.raises(Unauthorized):
        await cancel_order(store, order.id, requester_id="seller-2")


async def test_delete_is_soft_and_hidden_from_listing(store):
    order = await seed_order(store)

    deleted = await delete_order(store, order.id, "seller-1", now=T0)

    assert deleted.status == OrderStatus.DELETED.value
    assert deleted.deleted_at == T0
    assert await get_orders(store, "seller-1") == []
    assert (await store.find_order(order.id)).status == OrderStatus.DELETED.value


async def test_delete_by_other_seller(store):
    order = await seed_order(store)

    with pytest.raises(Unauthorized):
        await delete_order(store, order.id, "seller-2")


async def test_delete_paid_order(store):
    order = await seed_order(store, status=OrderStatus.PAID)

    with pytest.raises(InvalidTransition):
        await delete_order(store, order.id, "seller-1")
