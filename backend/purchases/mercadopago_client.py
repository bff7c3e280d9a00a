"""
Adaptateur MercadoPago: centralise les appels SDK et la normalisation des erreurs.
Aucun retry ici: une préférence dupliquée serait facturable deux fois.
"""
import logging
from typing import Any, Dict

import mercadopago

from backend.config import CheckoutSettings
from .errors import GatewayError

logger = logging.getLogger(__name__)

# module backend.purchases.mercadopago_client
def require_sdk(settings: CheckoutSettings) -> mercadopago.SDK:
    """
    Retourne un SDK configuré avec le jeton d'accès.
    - Sans jeton, GatewayError (inutile d'appeler l'API pour un 401 certain).
    """
    if not settings.access_token:
        raise GatewayError("MP_ACCESS_TOKEN manquant")
    return mercadopago.SDK(settings.access_token)


def _unwrap(result: Any, action: str) -> Dict[str, Any]:
    """
    Le SDK renvoie {"status": <int>, "response": {...}}.
    - statut non-2xx ou réponse non-dict => GatewayError
    """
    if not isinstance(result, dict):
        raise GatewayError(f"{action}: réponse inattendue")
    status = result.get("status")
    response = result.get("response")
    if not isinstance(status, int) or not 200 <= status < 300:
        message = (response or {}).get("message") if isinstance(response, dict) else None
        raise GatewayError(f"{action}: statut {status} {message or ''}".strip())
    if not isinstance(response, dict):
        raise GatewayError(f"{action}: corps de réponse invalide")
    return response


def create_preference(preference: Dict[str, Any], settings: CheckoutSettings) -> Dict[str, Any]:
    """
    Crée une préférence de paiement.
    Retour: dict préférence incluant au minimum "id" (et "init_point" en pratique).
    Erreurs: GatewayError (réseau, statut, id absent).
    """
    sdk = require_sdk(settings)
    try:
        result = sdk.preference().create(preference)
    except Exception as e:
        logger.exception("purchases.mercadopago.create_preference failed")
        raise GatewayError(f"create_preference: {e}") from e
    response = _unwrap(result, "create_preference")
    if not response.get("id"):
        raise GatewayError("create_preference: id absent de la réponse")
    logger.info("purchases.mercadopago.create_preference id=%s", response["id"])
    return response


def get_merchant_order(merchant_order_id: str, settings: CheckoutSettings) -> Dict[str, Any]:
    """Lit une merchant_order (notification IPN topic=merchant_order)."""
    sdk = require_sdk(settings)
    try:
        result = sdk.merchant_order().get(merchant_order_id)
    except Exception as e:
        logger.exception("purchases.mercadopago.get_merchant_order failed id=%s", merchant_order_id)
        raise GatewayError(f"get_merchant_order: {e}") from e
    return _unwrap(result, "get_merchant_order")
