import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Generator, List, Optional

import pytest

# Pas de Redis pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from fastapi.testclient import TestClient

from backend.config import CheckoutSettings
from backend.purchases.errors import Conflict, GatewayError
from backend.purchases.service import PurchaseService

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)


class FakeStore:
    """
    Stockage en mémoire avec la même interface que backend.purchases.repository.
    La réservation est conditionnelle (status == 'available') et tout-ou-rien,
    comme la fonction Postgres create_order_with_reservation.
    """

    def __init__(self, items: Optional[List[dict]] = None, customers: Optional[List[dict]] = None):
        self.items: Dict[str, dict] = {str(i["id"]): dict(i) for i in (items or [])}
        self.customers: Dict[str, dict] = {str(c["id"]): dict(c) for c in (customers or [])}
        self.orders: Dict[str, dict] = {}
        self.reserve_error: Optional[Exception] = None
        self.short_reservation = False
        self._lock = threading.Lock()

    def fetch_items_by_ids(self, ids):
        return [dict(self.items[i]) for i in ids if i in self.items]

    def fetch_customer(self, customer_id):
        row = self.customers.get(customer_id)
        return dict(row) if row else None

    def fetch_order(self, order_id):
        row = self.orders.get(order_id)
        return dict(row) if row else None

    def fetch_order_by_external_id(self, external_id):
        for row in self.orders.values():
            if row["external_id"] == external_id:
                return dict(row)
        return None

    def fetch_order_item_ids(self, order_id):
        return [i for i, row in self.items.items() if row.get("order_id") == order_id]

    def create_order_with_reservation(self, item_ids, amount_billed, external_id):
        if self.reserve_error is not None:
            raise self.reserve_error
        with self._lock:
            order = {
                "id": str(uuid.uuid4()),
                "date_created": datetime.now(timezone.utc).isoformat(),
                "status": "unpaid",
                "amount_billed": str(amount_billed),
                "external_id": external_id,
            }
            available = [i for i in item_ids if self.items.get(i, {}).get("status") == "available"]
            if len(available) < len(item_ids):
                raise Conflict("Billets réservés par une autre commande", ids=item_ids, external_id=external_id)
            self.orders[order["id"]] = order
            reserved = available[:-1] if self.short_reservation else available
            for i in reserved:
                self.items[i]["status"] = "booked"
                self.items[i]["order_id"] = order["id"]
            return {"order": dict(order), "reserved_count": len(reserved)}

    def mark_order_paid(self, order_id):
        with self._lock:
            row = self.orders.get(order_id)
            if not row or row["status"] != "unpaid":
                return False
            row["status"] = "paid"
            return True


class FakeGateway:
    def __init__(self):
        self.requests: List[dict] = []
        self.error: Optional[Exception] = None
        self.merchant_orders: Dict[str, dict] = {}
        self.before_return = None

    def create_preference(self, preference, settings):
        self.requests.append(preference)
        if self.error is not None:
            raise self.error
        if self.before_return is not None:
            self.before_return()
        n = len(self.requests)
        return {"id": f"pref-{n}", "init_point": f"https://mp.example.test/checkout/pref-{n}"}

    def get_merchant_order(self, merchant_order_id, settings):
        if merchant_order_id not in self.merchant_orders:
            raise GatewayError("get_merchant_order: statut 404")
        return self.merchant_orders[merchant_order_id]


@pytest.fixture
def settings() -> CheckoutSettings:
    return CheckoutSettings(
        checkout_url="https://checkout.example.test",
        back_url_success="success",
        back_url_pending="pending",
        back_url_failure="failure",
        excluded_payment_types=("ticket", "atm"),
        picture_url="https://cdn.example.test/ticket.png",
        currency_id="ARS",
        access_token="TEST-token",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        items=[
            {"id": "A", "price": "100.00", "category_id": 1, "status": "available", "order_id": None},
            {"id": "B", "price": "100.00", "category_id": 1, "status": "available", "order_id": None},
            {"id": "C", "price": "250.50", "category_id": 2, "status": "available", "order_id": None},
            {"id": "D", "price": "0.10", "category_id": 3, "status": "available", "order_id": None},
            {"id": "X", "price": "100.00", "category_id": 1, "status": "booked", "order_id": "old-order"},
        ],
        customers=[
            {
                "id": "cust-1",
                "email_address": "ana@example.test",
                "full_name": "Ana María  López",
                "identification_type": None,
                "identification_number": "30111222",
            },
        ],
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def service(settings, store, gateway) -> PurchaseService:
    return PurchaseService(settings, repository=store, gateway=gateway)


@pytest.fixture(scope="session")
def app():
    from backend.app import app as fastapi_app
    return fastapi_app


@pytest.fixture()
def client(app, service) -> Generator[TestClient, None, None]:
    from backend.purchases.views import get_purchase_service
    app.dependency_overrides[get_purchase_service] = lambda: service
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_purchase_service, None)
