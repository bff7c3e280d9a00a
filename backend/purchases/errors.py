"""
Taxonomie d'erreurs du workflow d'achat.
Chaque erreur porte un `code` stable, repris tel quel dans les réponses JSON.
"""
from typing import Iterable, Optional


class PurchaseError(Exception):
    status_code = 400

    def __init__(self, message: str, code: str = "purchase_error"):
        super().__init__(message)
        self.code = code

    def to_dict(self) -> dict:
        return {"detail": str(self), "code": self.code}


class NotFound(PurchaseError):
    status_code = 404

    def __init__(self, message: str, ids: Iterable[str] = ()):
        super().__init__(message, code="not_found")
        self.ids = list(ids)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.ids:
            data["ids"] = self.ids
        return data


class Conflict(PurchaseError):
    """Billet déjà réservé, ou course de réservation perdue."""
    status_code = 409

    def __init__(self, message: str, ids: Iterable[str] = (), external_id: Optional[str] = None):
        super().__init__(message, code="conflict")
        self.ids = list(ids)
        self.external_id = external_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.ids:
            data["ids"] = self.ids
        if self.external_id:
            data["external_id"] = self.external_id
        return data


class GatewayError(PurchaseError):
    """Appel MercadoPago en échec (réseau, statut non-2xx, réponse malformée)."""
    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, code="gateway_error")


class OrphanedPreferenceError(PurchaseError):
    """La préférence existe côté passerelle mais la commande n'a pas été persistée."""
    status_code = 500

    def __init__(self, message: str, external_id: str):
        super().__init__(message, code="orphaned_preference")
        self.external_id = external_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["external_id"] = self.external_id
        return data


class InconsistentReservationError(PurchaseError):
    """Commande persistée sans que tous ses billets soient réservés."""
    status_code = 500

    def __init__(self, message: str, order_id: str, external_id: str):
        super().__init__(message, code="inconsistent_reservation")
        self.order_id = order_id
        self.external_id = external_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"order_id": self.order_id, "external_id": self.external_id})
        return data


class AccessDenied(PurchaseError):
    status_code = 403

    def __init__(self, message: str = "Accès interdit"):
        super().__init__(message, code="access_denied")
