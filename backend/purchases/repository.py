"""
Accès aux données pour la feature 'purchases' (tables orders, items, customers).

- Lectures: lookups par id / par ensemble d'ids.
- Écritures: uniquement conditionnelles.
  * create_order_with_reservation: fonction Postgres (RPC) qui insère la commande et
    réserve les billets dans une seule transaction (voir supabase/migrations).
  * mark_order_paid: update ... where status = 'unpaid'.
Les erreurs d'accès sont propagées à l'appelant (pas de liste vide silencieuse),
sauf 22P02 (id non-uuid): traité comme une ligne absente.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging
import uuid

from postgrest.exceptions import APIError

import backend.infra.supabase_client as supabase_client
from .errors import Conflict

logger = logging.getLogger(__name__)

ITEM_COLUMNS = "id, price, category_id, status, order_id"
ORDER_COLUMNS = "id, date_created, status, amount_billed, external_id"
CUSTOMER_COLUMNS = "id, email_address, full_name, identification_type, identification_number"

RESERVE_FUNCTION = "create_order_with_reservation"
# SQLSTATE levé par la fonction quand un billet n'est plus 'available'
ITEMS_UNAVAILABLE_SQLSTATE = "P0409"
# invalid_text_representation: id qui n'est pas un uuid
INVALID_ID_SQLSTATE = "22P02"

# module backend.purchases.repository
def _first(res) -> Optional[Dict[str, Any]]:
    rows = res.data or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None


def _is_invalid_id(e: APIError) -> bool:
    code = getattr(e, "code", None)
    if code is None and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return code == INVALID_ID_SQLSTATE


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def fetch_items_by_ids(ids: List[str]) -> List[dict]:
    """
    Récupère les billets par leurs IDs (table 'items').
    Un id non-uuid fait échouer toute la requête (22P02): on relance avec les seuls
    ids valides, les autres sont simplement absents du résultat.
    """
    ids = [str(i) for i in ids]
    if not ids:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("items")
            .select(ITEM_COLUMNS)
            .in_("id", ids)
            .execute()
        )
    except APIError as e:
        if not _is_invalid_id(e):
            raise
        valid = [i for i in ids if _is_uuid(i)]
        if len(valid) == len(ids):
            raise
        logger.info("purchases.repository.items ids invalides ignorés: %s", [i for i in ids if i not in valid])
        return fetch_items_by_ids(valid)
    return res.data or []


def _select_one(table: str, columns: str, column: str, value: str) -> Optional[dict]:
    """Première ligne où column == value; None si absente ou si value n'est pas un uuid valide."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(table)
            .select(columns)
            .eq(column, value)
            .limit(1)
            .execute()
        )
    except APIError as e:
        if _is_invalid_id(e):
            return None
        raise
    return _first(res)


def fetch_customer(customer_id: str) -> Optional[dict]:
    return _select_one("customers", CUSTOMER_COLUMNS, "id", customer_id)


def fetch_order(order_id: str) -> Optional[dict]:
    return _select_one("orders", ORDER_COLUMNS, "id", order_id)


def fetch_order_by_external_id(external_id: str) -> Optional[dict]:
    return _select_one("orders", ORDER_COLUMNS, "external_id", external_id)


def fetch_order_item_ids(order_id: str) -> List[str]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("items")
            .select("id")
            .eq("order_id", order_id)
            .execute()
        )
    except APIError as e:
        if _is_invalid_id(e):
            return []
        raise
    return [str(r.get("id")) for r in (res.data or [])]


def create_order_with_reservation(item_ids: List[str], amount_billed: Decimal, external_id: str) -> Dict[str, Any]:
    """
    Insère la commande 'unpaid' et passe les billets available -> booked, atomiquement.
    Retour: {"order": {...}, "reserved_count": <int>}
    Erreurs:
    - Conflict si au moins un billet n'est plus disponible (transaction annulée côté DB)
    - APIError / erreurs réseau propagées telles quelles
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .rpc(RESERVE_FUNCTION, {
                "p_item_ids": [str(i) for i in item_ids],
                "p_amount_billed": str(amount_billed),
                "p_external_id": external_id,
            })
            .execute()
        )
    except APIError as e:
        if getattr(e, "code", None) == ITEMS_UNAVAILABLE_SQLSTATE:
            logger.warning("purchases.repository.reserve conflict ids=%s external_id=%s", item_ids, external_id)
            raise Conflict("Billets réservés par une autre commande", ids=item_ids, external_id=external_id) from e
        raise
    data = res.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict) or not data.get("order"):
        raise RuntimeError(f"{RESERVE_FUNCTION}: réponse inattendue {data!r}")
    return data


def mark_order_paid(order_id: str) -> bool:
    """
    Transition unpaid -> paid, conditionnelle.
    Retourne True si une ligne a été modifiée (False: absente ou déjà payée).
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"status": "paid"})
            .eq("id", order_id)
            .eq("status", "unpaid")
            .execute()
        )
    except APIError as e:
        if _is_invalid_id(e):
            return False
        raise
    return bool(res.data)
