"""
Data models for the fiscal document engine.

Pydantic records for products, clients, line items, tax breakdowns, the
company profile and issued documents, plus the PostgreSQL schema used by the
record store.
"""
from pathlib import Path

from .records import (
    ZERO,
    AuthorityResponse,
    AuthorityStatus,
    Client,
    ClientDocType,
    CompanyProfile,
    Document,
    DocumentKind,
    LineItem,
    PaymentTerm,
    Product,
    TaxBreakdown,
    TaxCategory,
    UnitCode,
)

# Path to schema file
SCHEMA_FILE = Path(__file__).parent / "schema.sql"


def get_schema_sql(schema: str = "pos") -> str:
    """Get the full schema SQL for the given database schema name."""
    return SCHEMA_FILE.read_text(encoding="utf-8").replace("{schema}", schema)


__all__ = [
    "ZERO",
    "AuthorityResponse",
    "AuthorityStatus",
    "Client",
    "ClientDocType",
    "CompanyProfile",
    "Document",
    "DocumentKind",
    "LineItem",
    "PaymentTerm",
    "Product",
    "TaxBreakdown",
    "TaxCategory",
    "UnitCode",
    "SCHEMA_FILE",
    "get_schema_sql",
]
