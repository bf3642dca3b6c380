"""
app.config is a PACKAGE.

- Company identity lives in: app.config.company
- App runtime settings live in: app.settings
"""

from .company import COMPANY_NAME, checkout_product_name

__all__ = ["COMPANY_NAME", "checkout_product_name"]
