"""
Single source of truth for company identity.

Used by the Stripe Checkout line item name and anything customer-facing
that needs the business name or contact details.
"""

from __future__ import annotations

COMPANY_NAME = "Chatman Security & Fire"


def checkout_product_name(quote_number: str | None) -> str:
    """Line item title shown on the hosted checkout page."""
    ref = (quote_number or "").strip()
    return f"{COMPANY_NAME} - {ref}" if ref else COMPANY_NAME
