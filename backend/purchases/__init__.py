"""
Module 'purchases' (feature-first): point d'entrée public.
Réunit agrégation des billets, préférence MercadoPago, repository BD et service.
"""

from .errors import (
    PurchaseError,
    NotFound,
    Conflict,
    GatewayError,
    OrphanedPreferenceError,
    InconsistentReservationError,
    AccessDenied,
)
from .models import Item, Order, Payer, CreatePurchaseRequest
from .inventory import Aggregate, aggregate_items
from .payer import payer_from_customer, resolve_payer
from .preference import build_preference, format_gateway_datetime
from .service import PurchaseService

__all__ = [
    # errors
    "PurchaseError",
    "NotFound",
    "Conflict",
    "GatewayError",
    "OrphanedPreferenceError",
    "InconsistentReservationError",
    "AccessDenied",
    # models
    "Item",
    "Order",
    "Payer",
    "CreatePurchaseRequest",
    # inventory / payer / preference
    "Aggregate",
    "aggregate_items",
    "payer_from_customer",
    "resolve_payer",
    "build_preference",
    "format_gateway_datetime",
    # service
    "PurchaseService",
]
