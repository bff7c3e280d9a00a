"""
Construction de la préférence MercadoPago (transformation pure: ni réseau, ni DB).

Règles:
- une ligne par catégorie de billet (quantity = nombre de billets de la catégorie);
  si une catégorie mélange plusieurs prix, une ligne par (catégorie, prix) afin que
  sum(quantity * unit_price) reste égal au montant facturé
- unit_price = prix réel du billet, sauf en mode sandbox (prix nominal)
- external_reference = ids des billets joints par "|"
- validité: de maintenant à +24h, horodatage en millisecondes suffixé "-03:00"
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from backend.config import CheckoutSettings
from .models import Item, Payer

# module backend.purchases.preference

EXTERNAL_REFERENCE_SEPARATOR = "|"
EXPIRATION_WINDOW = timedelta(hours=24)
GATEWAY_TZ = timezone(timedelta(hours=-3))


def format_gateway_datetime(moment: datetime) -> str:
    """Ex: 2019-09-01T12:30:00.123-03:00 (toujours 3 décimales, toujours -03:00)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(GATEWAY_TZ)
    return local.strftime("%Y-%m-%dT%H:%M:%S") + f".{local.microsecond // 1000:03d}-03:00"


def _as_amount(value: Decimal) -> float:
    # Le SDK sérialise en JSON: conversion au dernier moment, au centime près
    return float(value.quantize(Decimal("0.01")))


def group_lines(items: List[Item], quantities_by_category: Dict[str, int]) -> List[Tuple[str, Decimal, int]]:
    """Regroupe les billets en (category_id, prix unitaire, quantité), ordre d'apparition conservé."""
    groups: Dict[Tuple[str, Decimal], int] = {}
    for it in items:
        key = (it.category_id, it.price)
        groups[key] = groups.get(key, 0) + 1

    prices_per_category: Dict[str, int] = {}
    for category_id, _ in groups:
        prices_per_category[category_id] = prices_per_category.get(category_id, 0) + 1

    lines = []
    for (category_id, price), count in groups.items():
        if prices_per_category[category_id] == 1:
            count = quantities_by_category.get(category_id, count)
        lines.append((category_id, price, count))
    return lines


def build_line_item(category_id: str, price: Decimal, quantity: int, settings: CheckoutSettings) -> Dict[str, Any]:
    unit_price = settings.fake_unit_price if settings.use_fake_payments else price
    line: Dict[str, Any] = {
        "id": f"TICKET-{category_id}",
        "title": settings.title_for(category_id),
        "quantity": quantity,
        "currency_id": settings.currency_id,
        "unit_price": _as_amount(unit_price),
        "category_id": "tickets",
    }
    if settings.picture_url:
        line["picture_url"] = settings.picture_url
    return line


def build_preference(
    items: List[Item],
    quantities_by_category: Dict[str, int],
    settings: CheckoutSettings,
    payer: Optional[Payer] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Construit le payload de POST /checkout/preferences.
    - now: injectable pour les tests (UTC par défaut)
    - payer: optionnel (Payer Resolver)
    """
    now = now or datetime.now(timezone.utc)
    preference: Dict[str, Any] = {
        "items": [
            build_line_item(category_id, price, quantity, settings)
            for category_id, price, quantity in group_lines(items, quantities_by_category)
        ],
        "payment_methods": {
            "excluded_payment_types": [{"id": t} for t in settings.excluded_payment_types],
        },
        "back_urls": {
            "success": settings.back_url(settings.back_url_success),
            "pending": settings.back_url(settings.back_url_pending),
            "failure": settings.back_url(settings.back_url_failure),
        },
        "auto_return": "approved",
        "external_reference": EXTERNAL_REFERENCE_SEPARATOR.join(it.id for it in items),
        "expires": True,
        "expiration_date_from": format_gateway_datetime(now),
        "expiration_date_to": format_gateway_datetime(now + EXPIRATION_WINDOW),
    }
    if settings.ipn_enabled and settings.notification_url:
        preference["notification_url"] = settings.notification_url
    if payer is not None:
        preference["payer"] = payer.model_dump()
    return preference
