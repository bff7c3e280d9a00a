# module backend.purchases.views

"""Endpoints de l'user story Achat.
- POST /api/v1/purchases: crée la commande (préférence MercadoPago + réservation des billets).
- GET /api/v1/purchases/{order_id}: lecture de la commande.
- DELETE /api/v1/purchases/{order_id}: toujours 403 (commande immuable).
- GET /api/v1/purchases/payers/{customer_id}: données payer au format MercadoPago.
- POST /api/v1/purchases/webhook/ipn: notifications MercadoPago (désactivé par défaut).
Les PurchaseError sont converties en JSON par backend.app_setup.exceptions.
"""
from functools import lru_cache
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from backend.config import load_checkout_settings
from backend.utils.rate_limit import optional_rate_limit
from .models import CreatePurchaseRequest
from .service import PurchaseService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/purchases", tags=["Purchases API"])


@lru_cache(maxsize=1)
def get_purchase_service() -> PurchaseService:
    """Service unique, configuration lue une seule fois."""
    return PurchaseService(load_checkout_settings())


@router.post("", status_code=201, dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_purchase(body: CreatePurchaseRequest, service: PurchaseService = Depends(get_purchase_service)):
    """Crée une commande 'unpaid' pour les billets demandés.
    - Entrée JSON: {"item_ids": ["<id>", ...], "customer_id": "<id>"?}
    - Réponse: ressource purchase + meta.initPoint (URL de paiement)
    - Erreurs: 404 billet/client absent, 409 billet déjà réservé, 502 passerelle
    """
    order = service.create_order(body.item_ids, customer_id=body.customer_id)
    return JSONResponse(status_code=201, content={"data": order.to_resource()})


@router.get("/payers/{customer_id}")
def get_payer(customer_id: str, service: PurchaseService = Depends(get_purchase_service)) -> Dict[str, Any]:
    return service.resolve_payer(customer_id).model_dump()


@router.get("/{order_id}")
def get_purchase(order_id: str, service: PurchaseService = Depends(get_purchase_service)):
    order = service.get_order(order_id)
    return {"data": order.to_resource()}


@router.delete("/{order_id}")
def delete_purchase(order_id: str, service: PurchaseService = Depends(get_purchase_service)):
    service.delete_order(order_id)


@router.post("/webhook/ipn", include_in_schema=False)
def webhook_ipn(
    request: Request,
    topic: Optional[str] = None,
    id: Optional[str] = None,
    service: PurchaseService = Depends(get_purchase_service),
):
    """Notification IPN MercadoPago (?topic=merchant_order&id=<merchant_order_id>).
    - Répond {"status": "disabled"} tant que MP_IPN_ENABLED n'est pas activé.
    - merchant_order payée => mark_as_paid sur la commande liée (idempotent).
    """
    result = service.handle_notification(topic or request.query_params.get("type"), id or request.query_params.get("data.id"))
    logger.info("purchases.webhook_ipn topic=%s id=%s status=%s", topic, id, result.get("status"))
    return result
