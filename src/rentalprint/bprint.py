"""
Links for the "Bluetooth Print" phone app (bprint:// scheme).

With "Browser Print" enabled in the app, opening one of these links makes
the phone fetch the ready-made receipt from the admin API and print it
without further taps. ``auto=1`` asks the app to print immediately.
"""

import os
from typing import Optional
from urllib.parse import quote

API_URL_ENV = "RENTALPRINT_API_URL"
DEFAULT_API_URL = "http://localhost:8081"

INVOICE_TYPES = ("dp", "full")

AUTO = "&auto=1"


def get_api_base(api_base: Optional[str] = None) -> str:
    """API base URL: argument, then $RENTALPRINT_API_URL, then localhost."""
    base = api_base or os.environ.get(API_URL_ENV) or DEFAULT_API_URL
    return base.rstrip("/")


def _url(kind: str, query: str, api_base: Optional[str]) -> str:
    return f"bprint://{get_api_base(api_base)}/api/v1/bprint/{kind}?{query}{AUTO}"


def booking_invoice_url(
    booking_id: str, invoice_type: str, api_base: Optional[str] = None
) -> str:
    """Link printing a booking invoice ("dp" for down payment or "full")."""
    if invoice_type not in INVOICE_TYPES:
        raise ValueError(
            f"Invalid invoice type: {invoice_type}. Supported types: {list(INVOICE_TYPES)}"
        )
    query = f"booking_id={quote(booking_id, safe='')}&type={quote(invoice_type, safe='')}"
    return _url("booking-invoice", query, api_base)


def rental_invoice_url(rental_id: str, api_base: Optional[str] = None) -> str:
    """Link printing a rental invoice."""
    return _url("rental-invoice", f"rental_id={quote(rental_id, safe='')}", api_base)


def product_label_url(item_id: str, api_base: Optional[str] = None) -> str:
    """Link printing an item's barcode label."""
    return _url("product-label", f"item_id={quote(item_id, safe='')}", api_base)
