"""
SUNAT POS - fiscal document engine for a Peruvian point of sale.

Turns a cart into a legally numbered sales document, renders it as UBL 2.1
XML and submits it to the tax authority (simulated).

Key Features:
- IGV tax breakdown for tax-inclusive prices (taxed, exempt, unaffected)
- Per-kind numbering derived from history, with per-series locking
- UBL 2.1 invoice and SOAP sendBill rendering with Jinja2 templates
- Checkout state machine with in-memory and PostgreSQL record stores
- DNI/RUC lookup and WhatsApp receipt delivery

Usage:
    # Issue a demo receipt against the in-memory store
    python -m sunat_pos demo

    # Render a demo document's XML
    python -m sunat_pos render --kind invoice

    # Initialize the PostgreSQL schema
    python -m sunat_pos --init-db
"""

__version__ = "1.0.0"

from .calculations import compute_totals
from .cart import Cart
from .checkout import CheckoutOrchestrator, CheckoutRequest, CheckoutResult
from .config import PosConfig
from .numbering import next_correlative
from .submission import SubmissionAdapter
from .ubl import render_invoice

__all__ = [
    "Cart",
    "CheckoutOrchestrator",
    "CheckoutRequest",
    "CheckoutResult",
    "PosConfig",
    "SubmissionAdapter",
    "compute_totals",
    "next_correlative",
    "render_invoice",
    "__version__",
]
