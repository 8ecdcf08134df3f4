"""
Records printed on receipts and labels.

Each record mirrors the JSON returned by the rental admin API and can be
built from it with ``from_dict``. Missing optional keys get neutral
defaults so a partially filled record still prints.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


def _num(data: dict, key: str) -> float:
    value = data.get(key)
    return float(value) if value is not None else 0.0


@dataclass
class CompanyInfo:
    """Shop details shown in receipt headers and footers."""
    name: str = ""
    tagline: str = ""
    address: str = ""
    address_lines: list[str] = field(default_factory=list)
    phone: str = ""
    email: str = ""
    website: str = ""
    short_name: str = ""

    @property
    def display_name(self) -> str:
        """Name used in running text, e.g. the thank-you line."""
        return self.short_name or self.name

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["CompanyInfo"]:
        if not data:
            return None
        return cls(
            name=data.get("name") or "",
            tagline=data.get("tagline") or "",
            address=data.get("address") or "",
            address_lines=list(data.get("address_lines") or []),
            phone=data.get("phone") or "",
            email=data.get("email") or "",
            website=data.get("website") or "",
            short_name=data.get("short_name") or "",
        )


@dataclass
class InvoiceItem:
    """One line of a booking invoice."""
    description: str
    quantity: int = 1
    unit_price: float = 0.0
    total: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceItem":
        return cls(
            description=data.get("description") or "",
            quantity=int(data.get("quantity") or 1),
            unit_price=_num(data, "unit_price"),
            total=_num(data, "total"),
        )


@dataclass
class InvoiceData:
    """A booking invoice (down payment or full)."""
    invoice_number: str
    booking_id: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    product_name: str = ""
    booking_date: Optional[str] = None
    total_amount: float = 0.0
    discount_amount: float = 0.0
    final_amount: float = 0.0
    due_amount: float = 0.0
    invoice_type: str = "full"
    due_date: Optional[str] = None
    items: list[InvoiceItem] = field(default_factory=list)
    company: Optional[CompanyInfo] = None
    generated_at: Optional[str] = None
    payment_status: str = ""

    @property
    def grand_total(self) -> float:
        """Final amount, falling back to the total before discounts."""
        return self.final_amount or self.total_amount

    @property
    def is_package_pricing(self) -> bool:
        """True when items carry no prices and only the invoice has a total."""
        return (
            bool(self.items)
            and all(item.unit_price <= 0 and item.total <= 0 for item in self.items)
            and self.total_amount > 0
        )

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceData":
        return cls(
            invoice_number=data.get("invoice_number") or "",
            booking_id=data.get("booking_id") or "",
            customer_name=data.get("customer_name") or "",
            customer_email=data.get("customer_email") or "",
            customer_phone=data.get("customer_phone") or "",
            product_name=data.get("product_name") or "",
            booking_date=data.get("booking_date"),
            total_amount=_num(data, "total_amount"),
            discount_amount=_num(data, "discount_amount"),
            final_amount=_num(data, "final_amount"),
            due_amount=_num(data, "due_amount"),
            invoice_type=data.get("invoice_type") or "full",
            due_date=data.get("due_date"),
            items=[InvoiceItem.from_dict(item) for item in data.get("items") or []],
            company=CompanyInfo.from_dict(data.get("company")),
            generated_at=data.get("generated_at"),
            payment_status=data.get("payment_status") or "",
        )


@dataclass
class Customer:
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Customer"]:
        if not data:
            return None
        return cls(
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
            phone=data.get("phone") or "",
            email=data.get("email") or "",
        )


@dataclass
class RentalItem:
    """One rented item with its pricing."""
    name: str = "Item"
    size_label: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    total_price: float = 0.0
    discount_amount: float = 0.0

    @property
    def description(self) -> str:
        return f"{self.name} - {self.size_label}" if self.size_label else self.name

    @property
    def line_total(self) -> float:
        return self.total_price or self.unit_price * self.quantity

    @property
    def price_each(self) -> float:
        return self.unit_price or self.total_price

    @classmethod
    def from_dict(cls, data: dict) -> "RentalItem":
        item: dict[str, Any] = data.get("item") or {}
        size = item.get("size") or {}
        return cls(
            name=item.get("name") or "Item",
            size_label=size.get("label") or "",
            quantity=int(data.get("quantity") or 1),
            unit_price=_num(data, "unit_price"),
            total_price=_num(data, "total_price"),
            discount_amount=_num(data, "discount_amount"),
        )


@dataclass
class Rental:
    """A rental with its charges, deposit and dates."""
    id: str
    status: str
    rental_date: str
    return_date: str
    customer: Optional[Customer] = None
    items: list[RentalItem] = field(default_factory=list)
    actual_pickup_date: Optional[str] = None
    actual_return_date: Optional[str] = None
    total_cost: float = 0.0
    security_deposit: float = 0.0
    late_fee: float = 0.0
    damage_charges: float = 0.0
    notes: str = ""

    @property
    def invoice_number(self) -> str:
        return f"INV-{self.id[-8:].upper()}"

    @property
    def items_subtotal(self) -> float:
        return sum(item.line_total for item in self.items)

    @property
    def items_discount(self) -> float:
        return sum(item.discount_amount for item in self.items)

    @property
    def grand_total(self) -> float:
        return self.total_cost + self.late_fee + self.damage_charges

    @property
    def refundable_deposit(self) -> float:
        return max(self.security_deposit - self.damage_charges, 0)

    @classmethod
    def from_dict(cls, data: dict) -> "Rental":
        # Rentals created from a booking may only carry the booking's items
        raw_items = data.get("items") or (data.get("booking") or {}).get("items") or []
        return cls(
            id=data.get("id") or "",
            status=data.get("status") or "pending",
            rental_date=data.get("rental_date") or "",
            return_date=data.get("return_date") or "",
            customer=Customer.from_dict(data.get("customer")),
            items=[RentalItem.from_dict(item) for item in raw_items],
            actual_pickup_date=data.get("actual_pickup_date"),
            actual_return_date=data.get("actual_return_date"),
            total_cost=_num(data, "total_cost"),
            security_deposit=_num(data, "security_deposit"),
            late_fee=_num(data, "late_fee"),
            damage_charges=_num(data, "damage_charges"),
            notes=data.get("notes") or "",
        )


@dataclass
class ProductLabel:
    """Inventory item label content."""
    name: str
    code: str
    barcode: str
    brand: str = ""
    color: str = ""
    size_label: str = ""

    @property
    def details(self) -> list[str]:
        details = []
        if self.brand:
            details.append(self.brand)
        if self.color:
            details.append(self.color)
        if self.size_label:
            details.append(f"Size: {self.size_label}")
        return details

    @classmethod
    def from_dict(cls, data: dict) -> "ProductLabel":
        size = data.get("size") or {}
        return cls(
            name=data.get("name") or "",
            code=data.get("code") or "",
            barcode=data.get("barcode") or "",
            brand=data.get("brand") or "",
            color=data.get("color") or "",
            size_label=size.get("label") or "",
        )
