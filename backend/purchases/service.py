"""
Cas d'usage 'purchases': orchestre inventory, preference, mercadopago_client et repository.

Ordre de create_order (chaque étape est une obligation):
1) agréger les billets (prix total exact + quantités par catégorie)
2) construire puis envoyer la préférence à MercadoPago (hors transaction DB)
3+4) insérer la commande 'unpaid' et réserver les billets, en une transaction (RPC)

Échecs:
- étape 2: GatewayError, aucune écriture locale
- étape 3/4: Conflict si un billet a été pris entre-temps, sinon OrphanedPreferenceError
  (la préférence existe chez MercadoPago sans commande locale)
"""
import logging
from typing import Any, Dict, Iterable, Optional

from backend.config import CheckoutSettings
from . import mercadopago_client
from . import repository
from .errors import AccessDenied, Conflict, InconsistentReservationError, NotFound, OrphanedPreferenceError
from .inventory import aggregate_items
from .models import Order, Payer
from .payer import resolve_payer
from .preference import build_preference

logger = logging.getLogger(__name__)

# module backend.purchases.service
class PurchaseService:
    """
    Workflow d'achat construit une fois avec sa configuration.
    repository / gateway: modules par défaut, substituables (tests, autre stockage).
    """

    def __init__(self, settings: CheckoutSettings, repository=repository, gateway=mercadopago_client):
        self.settings = settings
        self.repository = repository
        self.gateway = gateway

    def resolve_payer(self, customer_id: str) -> Payer:
        return resolve_payer(customer_id, self.repository.fetch_customer)

    def create_order(self, item_ids: Iterable[str], customer_id: Optional[str] = None) -> Order:
        aggregate = aggregate_items(item_ids, self.repository.fetch_items_by_ids)
        payer = self.resolve_payer(customer_id) if customer_id else None

        request = build_preference(aggregate.items, aggregate.quantities_by_category, self.settings, payer=payer)
        preference = self.gateway.create_preference(request, self.settings)
        external_id = str(preference["id"])

        try:
            result = self.repository.create_order_with_reservation(
                aggregate.item_ids, aggregate.total_price, external_id
            )
        except Conflict as e:
            e.external_id = external_id
            logger.warning("purchases.create_order lost reservation race ids=%s external_id=%s", e.ids, external_id)
            raise
        except Exception as e:
            logger.exception("purchases.create_order persistence failed external_id=%s", external_id)
            raise OrphanedPreferenceError(
                f"Préférence {external_id} créée sans commande locale: {e}", external_id=external_id
            ) from e

        order = Order.from_row(result["order"], item_ids=aggregate.item_ids)
        reserved = int(result.get("reserved_count") or 0)
        if reserved != len(aggregate.items):
            logger.error(
                "purchases.create_order partial reservation order_id=%s reserved=%s expected=%s",
                order.id, reserved, len(aggregate.items),
            )
            raise InconsistentReservationError(
                f"Commande {order.id}: {reserved}/{len(aggregate.items)} billets réservés",
                order_id=order.id,
                external_id=external_id,
            )

        order.init_point = preference.get("init_point") or preference.get("sandbox_init_point")
        logger.info(
            "purchases.create_order order_id=%s items=%s amount=%s external_id=%s",
            order.id, len(aggregate.items), order.amount_billed, external_id,
        )
        return order

    def get_order(self, order_id: str) -> Order:
        row = self.repository.fetch_order(order_id)
        if not row:
            raise NotFound(f"Commande introuvable: {order_id}", ids=[order_id])
        return Order.from_row(row, item_ids=self.repository.fetch_order_item_ids(order_id))

    def mark_as_paid(self, order_id: str) -> Order:
        """
        unpaid -> paid. Idempotent: une commande déjà payée est renvoyée telle quelle.
        """
        if self.repository.mark_order_paid(order_id):
            logger.info("purchases.mark_as_paid order_id=%s", order_id)
        order = self.get_order(order_id)
        if order.status != "paid":
            # La ligne existe mais n'a pas bougé: écriture concurrente ou garde DB
            raise Conflict(f"Commande {order_id} non passée en 'paid'", ids=[order_id])
        return order

    def delete_order(self, order_id: str) -> None:
        raise AccessDenied("Une commande ne peut pas être supprimée")

    def handle_notification(self, topic: Optional[str], resource_id: Optional[str]) -> Dict[str, Any]:
        """
        Notification IPN MercadoPago (désactivée par défaut: MP_IPN_ENABLED).
        Seul topic=merchant_order avec order_status=paid déclenche mark_as_paid,
        la commande étant retrouvée par external_id == preference_id.
        """
        if not self.settings.ipn_enabled:
            return {"status": "disabled"}
        if topic != "merchant_order" or not resource_id:
            return {"status": "ignored"}

        merchant_order = self.gateway.get_merchant_order(resource_id, self.settings)
        if merchant_order.get("order_status") != "paid":
            return {"status": "pending"}

        preference_id = str(merchant_order.get("preference_id") or "")
        row = self.repository.fetch_order_by_external_id(preference_id) if preference_id else None
        if not row:
            raise NotFound(f"Aucune commande pour la préférence {preference_id}", ids=[preference_id])
        order = self.mark_as_paid(str(row["id"]))
        return {"status": "ok", "order_id": order.id}
