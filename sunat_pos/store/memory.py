"""In-memory record store. Assigns sequential string ids like a database would."""
from __future__ import annotations
import itertools
import threading
from typing import Optional
from loguru import logger

from ..models import Client, CompanyProfile, Document, Product


class InMemoryStore:
    """
    Process-local RecordStore.

    Documents are kept newest first, as the sales history is listed.
    """

    def __init__(self, company: Optional[CompanyProfile] = None):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._clients: list[Client] = []
        self._products: list[Product] = []
        self._documents: list[Document] = []
        self._company = company

    def _next_id(self) -> str:
        return str(next(self._ids))

    def list_clients(self) -> list[Client]:
        with self._lock:
            return list(self._clients)

    def create_client(self, client: Client) -> Client:
        with self._lock:
            saved = client.model_copy(update={"id": self._next_id()})
            self._clients.insert(0, saved)
        logger.debug(f"Created client {saved.id} ({saved.name})")
        return saved

    def list_products(self) -> list[Product]:
        with self._lock:
            return sorted(self._products, key=lambda p: p.name)

    def create_product(self, product: Product) -> Product:
        with self._lock:
            saved = product.model_copy(update={"id": self._next_id()})
            self._products.append(saved)
        logger.debug(f"Created product {saved.id} ({saved.name})")
        return saved

    def list_documents(self) -> list[Document]:
        with self._lock:
            return list(self._documents)

    def create_document(self, document: Document) -> Document:
        with self._lock:
            for existing in self._documents:
                if (existing.kind, existing.series, existing.correlative) == (
                    document.kind, document.series, document.correlative
                ):
                    raise ValueError(f"Duplicate document number {document.number}")
            saved = document.with_id(self._next_id())
            self._documents.insert(0, saved)
        logger.debug(f"Stored document {saved.number} as id {saved.id}")
        return saved

    def get_company(self) -> Optional[CompanyProfile]:
        with self._lock:
            return self._company

    def save_company(self, company: CompanyProfile) -> CompanyProfile:
        with self._lock:
            self._company = company.model_copy()
        logger.info(f"Saved company profile for RUC {company.ruc}")
        return company
