"""
PostgreSQL record store.

Provides connection management and the RecordStore operations on top of
the schema in models/schema.sql.
"""
from __future__ import annotations
import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from typing import Optional
from zoneinfo import ZoneInfo
from loguru import logger

from ..config import PosConfig
from ..models import (
    AuthorityResponse,
    Client,
    CompanyProfile,
    Document,
    LineItem,
    Product,
    TaxBreakdown,
    get_schema_sql,
)
from . import StoreError

COMPANY_COLUMNS = [
    "ruc", "legal_name", "address", "ubigeo", "invoice_series", "receipt_series",
    "credit_note_series", "sol_user", "sol_pass", "logo_url", "api_token",
    "whatsapp_instance", "whatsapp_token",
]


def get_connection(config: Optional[PosConfig] = None):
    """
    Create a database connection.

    Returns an autocommit psycopg connection with dict rows.
    """
    config = config or PosConfig.from_env()
    return psycopg.connect(config.db_url, autocommit=True, row_factory=dict_row)


class PostgresStore:
    """
    RecordStore backed by PostgreSQL.

    Usage:
        with PostgresStore(config) as store:
            store.initialize_schema()
            history = store.list_documents()
    """

    def __init__(self, config: Optional[PosConfig] = None):
        self.config = config or PosConfig.from_env()
        self.schema = self.config.db_schema
        self._conn = None

    @property
    def conn(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            self._conn = get_connection(self.config)
        return self._conn

    def close(self):
        """Close database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def initialize_schema(self):
        """Create schema and tables if they don't exist."""
        with self.conn.cursor() as cur:
            cur.execute(get_schema_sql(self.schema))
        logger.info(f"Database schema {self.schema} initialized")

    # Clients

    def list_clients(self) -> list[Client]:
        with self.conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT id, doc_type, doc_number, name, address, phone, email
                FROM {self.schema}.client
                ORDER BY created_at DESC
                """
            )
            return [Client(**{**row, "id": str(row["id"]), "address": row["address"] or ""})
                    for row in cur.fetchall()]

    def create_client(self, client: Client) -> Client:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self.schema}.client (doc_type, doc_number, name, address, phone, email)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (client.doc_type.value, client.doc_number, client.name,
                     client.address, client.phone, client.email),
                )
                row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Could not create client {client.name!r}: {e}") from e
        return client.model_copy(update={"id": str(row["id"])})

    # Products

    def list_products(self) -> list[Product]:
        with self.conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT id, name, category, price, stock, description, tax_category, unit_code
                FROM {self.schema}.product
                ORDER BY name
                """
            )
            return [Product(**{**row, "id": str(row["id"]), "category": row["category"] or ""})
                    for row in cur.fetchall()]

    def create_product(self, product: Product) -> Product:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self.schema}.product
                        (name, category, price, stock, description, tax_category, unit_code)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (product.name, product.category, product.price, product.stock,
                     product.description, product.tax_category.value, product.unit_code.value),
                )
                row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Could not create product {product.name!r}: {e}") from e
        return product.model_copy(update={"id": str(row["id"])})

    # Documents

    def list_documents(self) -> list[Document]:
        """All documents, newest first, with their lines."""
        with self.conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT id, provisional_key, kind, series, correlative, issued_at, client_data,
                       payment_term, totals, summary_payload, authority_status, authority_response
                FROM {self.schema}.document
                ORDER BY created_at DESC, id DESC
                """
            )
            headers = cur.fetchall()
            cur.execute(
                f"""
                SELECT document_id, product_id, description, quantity, unit_price,
                       tax_category, unit_code
                FROM {self.schema}.document_line
                ORDER BY document_id, position
                """
            )
            lines: dict[int, list[LineItem]] = {}
            for row in cur.fetchall():
                doc_id = row.pop("document_id")
                row["product_id"] = row["product_id"] or ""
                lines.setdefault(doc_id, []).append(LineItem(**row))

        tz = ZoneInfo(self.config.timezone)
        documents = []
        for h in headers:
            response = h["authority_response"]
            documents.append(Document(
                id=str(h["id"]),
                provisional_key=h["provisional_key"],
                kind=h["kind"],
                series=h["series"],
                correlative=h["correlative"],
                issued_at=h["issued_at"].astimezone(tz),
                client=Client(**h["client_data"]),
                payment_term=h["payment_term"],
                lines=tuple(lines.get(h["id"], [])),
                totals=TaxBreakdown(**h["totals"]),
                summary_payload=h["summary_payload"],
                authority_status=h["authority_status"],
                authority_response=AuthorityResponse(**response) if response else None,
            ))
        return documents

    def create_document(self, document: Document) -> Document:
        """
        Insert header and lines in one transaction.

        The unique (kind, series, correlative) constraint rejects a number
        drawn twice by concurrent processes.
        """
        response = document.authority_response
        try:
            with self.conn.transaction():
                with self.conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO {self.schema}.document
                            (provisional_key, kind, series, correlative, issued_at, client_data,
                             payment_term, totals, summary_payload, authority_status,
                             authority_response)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING id
                        """,
                        (
                            document.provisional_key,
                            document.kind.value,
                            document.series,
                            document.correlative,
                            document.issued_at,
                            Jsonb(document.client.model_dump(mode="json")),
                            document.payment_term.value,
                            Jsonb(document.totals.model_dump(mode="json", exclude={"grand_total"})),
                            document.summary_payload,
                            document.authority_status.value,
                            Jsonb(response.model_dump(mode="json")) if response else None,
                        ),
                    )
                    doc_id = cur.fetchone()["id"]
                    cur.executemany(
                        f"""
                        INSERT INTO {self.schema}.document_line
                            (document_id, position, product_id, description, quantity,
                             unit_price, tax_category, unit_code)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        [
                            (doc_id, pos, line.product_id, line.description, line.quantity,
                             line.unit_price, line.tax_category.value, line.unit_code.value)
                            for pos, line in enumerate(document.lines, start=1)
                        ],
                    )
        except psycopg.Error as e:
            raise StoreError(f"Could not store document {document.number}: {e}") from e

        logger.info(f"Stored document {document.number} as id {doc_id}")
        return document.with_id(str(doc_id))

    # Company profile

    def get_company(self) -> Optional[CompanyProfile]:
        with self.conn.cursor() as cur:
            cur.execute(
                f"SELECT {', '.join(COMPANY_COLUMNS)} FROM {self.schema}.company WHERE singleton"
            )
            row = cur.fetchone()
        if not row:
            return None
        return CompanyProfile(**{k: v for k, v in row.items() if v is not None})

    def save_company(self, company: CompanyProfile) -> CompanyProfile:
        """Upsert the single company row."""
        data = company.model_dump()
        columns_str = ", ".join(COMPANY_COLUMNS)
        placeholders = ", ".join([f"%({c})s" for c in COMPANY_COLUMNS])
        update_str = ", ".join([f"{c} = EXCLUDED.{c}" for c in COMPANY_COLUMNS])
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self.schema}.company (singleton, {columns_str})
                    VALUES (true, {placeholders})
                    ON CONFLICT (singleton)
                    DO UPDATE SET {update_str}, updated_at = now()
                    """,
                    data,
                )
        except psycopg.Error as e:
            raise StoreError(f"Could not save company profile: {e}") from e
        logger.info(f"Saved company profile for RUC {company.ruc}")
        return company
