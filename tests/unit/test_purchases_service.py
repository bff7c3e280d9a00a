import threading
from decimal import Decimal

import pytest
from postgrest.exceptions import APIError

from backend.purchases.errors import (
    AccessDenied,
    Conflict,
    GatewayError,
    InconsistentReservationError,
    NotFound,
    OrphanedPreferenceError,
)
from backend.purchases.service import PurchaseService


def test_create_order_prices_reserves_and_links_preference(service, store, gateway):
    order = service.create_order(["A", "B"])

    assert order.status == "unpaid"
    assert order.amount_billed == Decimal("200.00")
    assert order.external_id == "pref-1"
    assert order.item_ids == ["A", "B"]
    assert order.init_point == "https://mp.example.test/checkout/pref-1"

    line = gateway.requests[0]["items"]
    assert [(li["id"], li["quantity"], li["unit_price"]) for li in line] == [("TICKET-1", 2, 100.0)]
    assert store.items["A"]["status"] == "booked" and store.items["A"]["order_id"] == order.id
    assert store.items["B"]["status"] == "booked" and store.items["B"]["order_id"] == order.id


def test_create_order_with_customer_sends_payer(service, gateway):
    service.create_order(["C"], customer_id="cust-1")
    assert gateway.requests[0]["payer"]["first_name"] == "Ana"


def test_booked_item_conflicts_without_order_or_gateway_call(service, store, gateway):
    with pytest.raises(Conflict):
        service.create_order(["A", "X"])
    assert store.orders == {}
    assert gateway.requests == []
    assert store.items["A"]["status"] == "available"


def test_gateway_failure_leaves_no_trace(service, store, gateway):
    gateway.error = GatewayError("create_preference: connexion refusée")
    with pytest.raises(GatewayError):
        service.create_order(["A"])
    assert store.orders == {}
    assert store.items["A"]["status"] == "available"
    assert store.items["A"]["order_id"] is None


def test_persistence_failure_reports_orphaned_preference(service, store):
    store.reserve_error = APIError({"code": "08006", "message": "connection failure", "details": None, "hint": None})
    with pytest.raises(OrphanedPreferenceError) as exc:
        service.create_order(["A"])
    assert exc.value.external_id == "pref-1"
    assert exc.value.to_dict()["external_id"] == "pref-1"


def test_partial_reservation_is_reported(service, store):
    store.short_reservation = True
    with pytest.raises(InconsistentReservationError) as exc:
        service.create_order(["A", "B"])
    assert exc.value.external_id == "pref-1"


def test_reservation_race_loser_gets_conflict_with_external_id(service, store):
    # Le billet est pris entre l'agrégation et la réservation
    original = store.fetch_items_by_ids

    def fetch_then_steal(ids):
        rows = original(ids)
        store.items["A"]["status"] = "booked"
        return rows

    store.fetch_items_by_ids = fetch_then_steal
    with pytest.raises(Conflict) as exc:
        service.create_order(["A", "B"])
    assert exc.value.external_id == "pref-1"
    assert store.orders == {}
    assert store.items["B"]["status"] == "available"


def test_concurrent_orders_sharing_an_item(service, store, gateway):
    # Les deux requêtes voient A 'available' avant que l'une ne réserve
    barrier = threading.Barrier(2, timeout=5)
    gateway.before_return = barrier.wait
    results = {}

    def run(name, ids):
        try:
            results[name] = service.create_order(ids)
        except Conflict as e:
            results[name] = e

    t1 = threading.Thread(target=run, args=("first", ["A", "B"]))
    t2 = threading.Thread(target=run, args=("second", ["A", "C"]))
    t1.start()
    t2.start()
    t1.join()
    t2.join()

    conflicts = [r for r in results.values() if isinstance(r, Conflict)]
    orders = [r for r in results.values() if not isinstance(r, Conflict)]
    assert len(conflicts) == 1 and len(orders) == 1
    assert store.items["A"]["order_id"] == orders[0].id
    assert len(store.orders) == 1


def test_get_order_and_missing(service):
    created = service.create_order(["C"])
    fetched = service.get_order(created.id)
    assert fetched.amount_billed == Decimal("250.50")
    assert fetched.item_ids == ["C"]
    with pytest.raises(NotFound):
        service.get_order("missing")


def test_mark_as_paid_is_idempotent(service):
    order = service.create_order(["A"])
    assert service.mark_as_paid(order.id).status == "paid"
    assert service.mark_as_paid(order.id).status == "paid"


def test_mark_as_paid_missing_order(service):
    with pytest.raises(NotFound):
        service.mark_as_paid("missing")


def test_delete_order_always_denied(service):
    order = service.create_order(["A"])
    with pytest.raises(AccessDenied):
        service.delete_order(order.id)
    service.mark_as_paid(order.id)
    with pytest.raises(AccessDenied):
        service.delete_order(order.id)
    with pytest.raises(AccessDenied):
        service.delete_order("missing")


def test_notification_disabled_by_default(service):
    assert service.handle_notification("merchant_order", "mo-1") == {"status": "disabled"}


def test_notification_marks_order_paid(settings, store, gateway):
    from dataclasses import replace

    svc = PurchaseService(replace(settings, ipn_enabled=True), repository=store, gateway=gateway)
    order = svc.create_order(["A"])
    gateway.merchant_orders["mo-1"] = {"order_status": "paid", "preference_id": order.external_id}
    gateway.merchant_orders["mo-2"] = {"order_status": "payment_required", "preference_id": order.external_id}

    assert svc.handle_notification("payment", "123") == {"status": "ignored"}
    assert svc.handle_notification("merchant_order", "mo-2") == {"status": "pending"}
    assert svc.handle_notification("merchant_order", "mo-1") == {"status": "ok", "order_id": order.id}
    assert svc.handle_notification("merchant_order", "mo-1") == {"status": "ok", "order_id": order.id}
    assert svc.get_order(order.id).status == "paid"
