"""
Agrégation des billets sélectionnés (pas de passerelle, pas d'écriture).
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List

from .errors import Conflict, NotFound, PurchaseError
from .models import Item

# module backend.purchases.inventory


@dataclass(frozen=True)
class Aggregate:
    items: List[Item]
    total_price: Decimal
    quantities_by_category: Dict[str, int]

    @property
    def item_ids(self) -> List[str]:
        return [it.id for it in self.items]


def normalize_ids(item_ids: Iterable[str]) -> List[str]:
    """
    Nettoie et dédoublonne les identifiants (l'ordre d'apparition est conservé).
    - Soulève PurchaseError(invalid_selection) si aucun identifiant valide.
    """
    seen: Dict[str, None] = {}
    for raw in item_ids or []:
        item_id = str(raw or "").strip()
        if item_id:
            seen.setdefault(item_id, None)
    if not seen:
        raise PurchaseError("Sélection de billets vide", code="invalid_selection")
    return list(seen)


def aggregate_items(item_ids: Iterable[str], fetch_items: Callable[[List[str]], List[dict]]) -> Aggregate:
    """
    Résout les billets puis calcule prix total et quantités par catégorie.
    - fetch_items: lecture groupée par ids (repository.fetch_items_by_ids)
    - NotFound si un id ne correspond à aucun billet
    - Conflict si un billet est déjà 'booked'
    - Le total est une somme Decimal exacte (pas d'arrondi flottant)
    """
    ids = normalize_ids(item_ids)
    rows = fetch_items(ids) or []
    by_id = {str(r.get("id")): Item.model_validate(r) for r in rows}

    missing = [i for i in ids if i not in by_id]
    if missing:
        raise NotFound(f"Billets introuvables: {', '.join(missing)}", ids=missing)

    items = [by_id[i] for i in ids]
    booked = [it.id for it in items if it.is_booked]
    if booked:
        raise Conflict(f"Billets déjà réservés: {', '.join(booked)}", ids=booked)

    total = sum((it.price for it in items), Decimal("0"))
    quantities: Dict[str, int] = {}
    for it in items:
        quantities[it.category_id] = quantities.get(it.category_id, 0) + 1

    return Aggregate(items=items, total_price=total, quantities_by_category=quantities)
