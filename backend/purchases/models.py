# module backend.purchases.models
"""Projections typées des lignes Supabase (orders, items, customers)."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

OrderStatus = Literal["unpaid", "paid"]
ItemStatus = Literal["available", "booked"]


def to_decimal(value: Any) -> Decimal:
    """PostgREST renvoie les numeric en str ou float: on repasse par str pour éviter la dérive."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        raise ValueError("prix manquant")
    return Decimal(str(value))


class Item(BaseModel):
    id: str
    price: Decimal
    category_id: str
    status: ItemStatus = "available"
    order_id: Optional[str] = None

    @field_validator("id", "category_id", mode="before")
    @classmethod
    def _as_str(cls, v):
        return str(v)

    @field_validator("price", mode="before")
    @classmethod
    def _as_decimal(cls, v):
        return to_decimal(v)

    @property
    def is_booked(self) -> bool:
        return self.status == "booked" or bool(self.order_id)


class Order(BaseModel):
    id: str
    date_created: datetime
    status: OrderStatus = "unpaid"
    amount_billed: Decimal
    external_id: str
    item_ids: List[str] = Field(default_factory=list)
    # URL de paiement MercadoPago, renseignée uniquement à la création
    init_point: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _as_str(cls, v):
        return str(v)

    @field_validator("amount_billed", mode="before")
    @classmethod
    def _as_decimal(cls, v):
        return to_decimal(v)

    @classmethod
    def from_row(cls, row: Dict[str, Any], item_ids: Optional[List[str]] = None) -> "Order":
        return cls(
            id=row["id"],
            date_created=row["date_created"],
            status=row.get("status") or "unpaid",
            amount_billed=row["amount_billed"],
            external_id=row["external_id"],
            item_ids=[str(i) for i in (item_ids or [])],
        )

    def to_resource(self) -> Dict[str, Any]:
        """Forme ressource: {id, type, attributes, relationships}."""
        resource = {
            "id": self.id,
            "type": "purchase",
            "attributes": {
                "dateCreated": self.date_created.isoformat(),
                "status": self.status,
                "amountBilled": str(self.amount_billed),
                "externalId": self.external_id,
            },
            "relationships": {
                "tickets": {"data": [{"type": "ticket", "id": i} for i in self.item_ids]},
            },
        }
        if self.init_point:
            resource["meta"] = {"initPoint": self.init_point}
        return resource


class Identification(BaseModel):
    type: str = "DNI"
    number: Optional[str] = None


class Payer(BaseModel):
    email: Optional[str] = None
    identification: Identification
    first_name: str
    last_name: str


class CreatePurchaseRequest(BaseModel):
    item_ids: List[str] = Field(min_length=1)
    customer_id: Optional[str] = None

    @field_validator("item_ids", mode="before")
    @classmethod
    def _ids_as_str(cls, v):
        if v is None:
            return []
        # une chaîne serait itérée caractère par caractère
        if not isinstance(v, (list, tuple)):
            raise ValueError("item_ids doit être une liste")
        return [str(i).strip() for i in v]
