"""Shared fixtures: a fixed clock, a demo company, clients and document builders."""
import pytest
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from sunat_pos.config import PosConfig
from sunat_pos.models import (
    Client,
    ClientDocType,
    CompanyProfile,
    Document,
    DocumentKind,
    LineItem,
    PaymentTerm,
    Product,
    TaxCategory,
)
from sunat_pos.calculations import compute_totals
from sunat_pos.numbering import series_for
from sunat_pos.submission import SubmissionAdapter

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FIXED_NOW = datetime(2024, 5, 14, 10, 30, 0, tzinfo=ZoneInfo("America/Lima"))


@pytest.fixture
def fixtures_dir():
    return FIXTURES_DIR


@pytest.fixture
def config():
    """Deterministic config: no latency, always accept, no log file."""
    return PosConfig(
        sunat_env="beta",
        success_rate=1.0,
        latency=0.0,
        sale_note_delay=0.0,
        random_seed=7,
        identity_api_url="https://identity.test/v1",
        identity_api_token="test-token",
        identity_retry_attempts=3,
        whatsapp_api_url="https://gateway.test",
        log_file=None,
    )


@pytest.fixture
def company():
    return CompanyProfile(
        ruc="20123456789",
        legal_name="MI EMPRESA DEMO S.A.C.",
        address="Av. Pruebas 123, Lima",
        ubigeo="150101",
    )


@pytest.fixture
def ruc_client():
    return Client(
        id="c1",
        doc_type=ClientDocType.RUC,
        doc_number="20100070970",
        name="SUPERMERCADOS PERUANOS S.A.",
        address="Av. Morro Solar 1086",
    )


@pytest.fixture
def dni_client():
    return Client(id="c2", doc_type=ClientDocType.DNI, doc_number="45678912", name="María Quispe")


@pytest.fixture
def walk_in_client():
    return Client(id="c3", name="Cliente Varios")


@pytest.fixture
def products():
    return [
        Product(id="p1", name="Gaseosa 3L", price=Decimal("118.00")),
        Product(id="p2", name="Libro escolar", price=Decimal("35.00"), tax_category=TaxCategory.EXEMPT),
        Product(id="p3", name="Servicio técnico", price=Decimal("80.00"), tax_category=TaxCategory.UNAFFECTED),
        Product(id="p4", name="Galletas", price=Decimal("2.50")),
    ]


@pytest.fixture
def make_line():
    def _make(price, quantity=1, category=TaxCategory.TAXED, description="Item", product_id="p1"):
        return LineItem(
            product_id=product_id,
            description=description,
            unit_price=Decimal(str(price)),
            quantity=quantity,
            tax_category=category,
        )
    return _make


@pytest.fixture
def make_document(company, dni_client, make_line):
    """Pending document builder; lines default to one 118.00 taxed item."""
    def _make(kind=DocumentKind.RECEIPT, correlative=1, lines=None, client=None,
              payment_term=PaymentTerm.CASH, issued_at=FIXED_NOW):
        lines = tuple(lines or [make_line("118.00")])
        return Document(
            provisional_key=f"tmp-{kind.value}-{correlative}",
            kind=kind,
            series=series_for(kind, company),
            correlative=correlative,
            issued_at=issued_at,
            client=client or dni_client,
            payment_term=payment_term,
            lines=lines,
            totals=compute_totals(lines),
        )
    return _make


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def adapter(config):
    """Submission adapter that always accepts and never sleeps."""
    return SubmissionAdapter(config, decide=lambda: True, sleep=lambda seconds: None)


@pytest.fixture
def rejecting_adapter(config):
    return SubmissionAdapter(config, decide=lambda: False, sleep=lambda seconds: None)
