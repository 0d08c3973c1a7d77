"""
Plain value types for records fetched from a remote catalog.

These are immutable and safe to hand between threads; they never
reference ORM objects.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple


def parse_price(value: Any) -> Optional[Decimal]:
    """
    Parse a catalog price into an exact Decimal.

    The endpoint serialises prices as strings ("19.99"); numbers are
    accepted too. Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


@dataclass(frozen=True)
class RemoteVariant:
    """One variant as listed by the remote catalog."""

    id: int
    title: str
    price: Decimal
    available: bool
    position: int = 1
    sku: Optional[str] = None
    compare_at_price: Optional[Decimal] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RemoteVariant":
        """
        Raises:
            KeyError: if ``id``, ``price`` or ``available`` is missing
            ValueError: if the price cannot be parsed
        """
        price = parse_price(data["price"])
        if price is None:
            raise ValueError(f"Unparseable price for variant {data.get('id')}: {data['price']!r}")
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            sku=data.get("sku") or None,
            price=price,
            compare_at_price=parse_price(data.get("compare_at_price")),
            available=bool(data["available"]),
            position=int(data.get("position") or 1),
        )


@dataclass(frozen=True)
class RemoteProduct:
    """One product as listed by the remote catalog."""

    id: int
    title: str
    handle: str = ""
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    image_urls: Tuple[str, ...] = ()
    variants: Tuple[RemoteVariant, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RemoteProduct":
        images = data.get("images") or []
        variants = data.get("variants") or []
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            handle=str(data.get("handle") or ""),
            vendor=data.get("vendor") or None,
            product_type=data.get("product_type") or None,
            image_urls=tuple(img["src"] for img in images if img.get("src")),
            variants=tuple(RemoteVariant.from_json(v) for v in variants),
        )
