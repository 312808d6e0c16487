"""Storefront checkout service.

Checkout sessions, order totals and payment gateway integration for the
storefront, served over HTTP with FastAPI.
"""

__version__ = "0.1.0"
