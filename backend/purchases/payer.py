from typing import Any, Callable, Dict, Optional

from .errors import NotFound
from .models import Identification, Payer

# module backend.purchases.payer


def split_full_name(full_name: Optional[str]):
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def payer_from_customer(row: Dict[str, Any]) -> Payer:
    """
    Projette une ligne 'customers' au format payer MercadoPago.
    - identification.type: "DNI" par défaut
    - first_name = premier mot de full_name, last_name = le reste
    """
    first_name, last_name = split_full_name(row.get("full_name"))
    return Payer(
        email=row.get("email_address"),
        identification=Identification(
            type=row.get("identification_type") or "DNI",
            number=(str(row["identification_number"]) if row.get("identification_number") is not None else None),
        ),
        first_name=first_name,
        last_name=last_name,
    )


def resolve_payer(customer_id: str, fetch_customer: Callable[[str], Optional[dict]]) -> Payer:
    row = fetch_customer(customer_id)
    if not row:
        raise NotFound(f"Client introuvable: {customer_id}", ids=[customer_id])
    return payer_from_customer(row)
