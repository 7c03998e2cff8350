"""
Record stores for clients, products, documents and the company profile.

This module contains:
- The RecordStore protocol the checkout depends on
- An in-memory store (tests, demo)
- A PostgreSQL store
"""
from typing import Optional, Protocol

from ..models import Client, CompanyProfile, Document, Product


class StoreError(RuntimeError):
    """Raised when a record store operation fails."""
    pass


class RecordStore(Protocol):
    def list_clients(self) -> list[Client]: ...
    def create_client(self, client: Client) -> Client: ...
    def list_products(self) -> list[Product]: ...
    def create_product(self, product: Product) -> Product: ...
    def list_documents(self) -> list[Document]: ...
    def create_document(self, document: Document) -> Document: ...
    def get_company(self) -> Optional[CompanyProfile]: ...
    def save_company(self, company: CompanyProfile) -> CompanyProfile: ...


from .memory import InMemoryStore  # noqa: E402
from .postgres import PostgresStore, get_connection  # noqa: E402

__all__ = [
    "StoreError",
    "RecordStore",
    "InMemoryStore",
    "PostgresStore",
    "get_connection",
]
