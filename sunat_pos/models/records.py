from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, computed_field, field_validator

ZERO = Decimal("0")


class TaxCategory(str, Enum):
    """IGV affectation codes (SUNAT catalogue 07)."""
    TAXED = "10"        # gravado
    EXEMPT = "20"       # exonerado
    UNAFFECTED = "30"   # inafecto

    @property
    def scheme_id(self) -> str:
        return _TAX_SCHEMES[self][0]

    @property
    def scheme_name(self) -> str:
        return _TAX_SCHEMES[self][1]

    @property
    def percent(self) -> Decimal:
        return Decimal("18.00") if self is TaxCategory.TAXED else Decimal("0.00")


_TAX_SCHEMES = {
    TaxCategory.TAXED: ("1000", "IGV"),
    TaxCategory.EXEMPT: ("9997", "EXO"),
    TaxCategory.UNAFFECTED: ("9998", "INA"),
}


class UnitCode(str, Enum):
    """Commercial units of measure (SUNAT catalogue 03)."""
    NIU = "NIU"  # unit (goods)
    ZZ = "ZZ"    # service
    KGM = "KGM"
    LTR = "LTR"
    BX = "BX"
    GLL = "GLL"


class DocumentKind(str, Enum):
    """Document kinds; the value is the two-character type code."""
    INVOICE = "01"
    RECEIPT = "03"
    CREDIT_NOTE = "07"
    SALE_NOTE = "80"  # internal only, never reaches the authority

    @property
    def authority_code(self) -> Optional[str]:
        return None if self is DocumentKind.SALE_NOTE else self.value

    @property
    def is_fiscal(self) -> bool:
        return self is not DocumentKind.SALE_NOTE

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    DocumentKind.INVOICE: "Factura",
    DocumentKind.RECEIPT: "Boleta",
    DocumentKind.CREDIT_NOTE: "Nota de Crédito",
    DocumentKind.SALE_NOTE: "Nota de Venta",
}


class ClientDocType(str, Enum):
    DNI = "DNI"
    RUC = "RUC"
    NONE = "-"

    @property
    def identity_code(self) -> str:
        """Identity document type code (SUNAT catalogue 06)."""
        return {"DNI": "1", "RUC": "6"}.get(self.value, "0")


class PaymentTerm(str, Enum):
    CASH = "Contado"
    CREDIT = "Credito"


class AuthorityStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    INTERNAL = "INTERNAL"


class Product(BaseModel):
    id: str | None = None
    name: str
    category: str = ""
    price: Decimal                      # tax-inclusive
    stock: int = 0
    description: str | None = None
    tax_category: TaxCategory = TaxCategory.TAXED
    unit_code: UnitCode = UnitCode.NIU


class Client(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    doc_type: ClientDocType = ClientDocType.NONE
    doc_number: str = ""
    name: str
    address: str = ""
    phone: str | None = None
    email: str | None = None


class LineItem(BaseModel):
    """One sold product. Range checks happen in compute_totals."""
    model_config = ConfigDict(frozen=True)

    product_id: str
    description: str
    unit_price: Decimal                 # tax-inclusive
    quantity: int
    tax_category: TaxCategory = TaxCategory.TAXED
    unit_code: UnitCode = UnitCode.NIU

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class TaxBreakdown(BaseModel):
    """
    Tax-category subtotals at full precision.

    Rounding to two decimals happens only at output, see ``formatted``.
    """
    model_config = ConfigDict(frozen=True)

    taxed_base: Decimal = ZERO
    exempt_base: Decimal = ZERO
    unaffected_base: Decimal = ZERO
    tax_amount: Decimal = ZERO

    @computed_field
    @property
    def grand_total(self) -> Decimal:
        return self.taxed_base + self.exempt_base + self.unaffected_base + self.tax_amount

    @property
    def line_extension(self) -> Decimal:
        return self.taxed_base + self.exempt_base + self.unaffected_base

    def base_for(self, category: TaxCategory) -> Decimal:
        return {
            TaxCategory.TAXED: self.taxed_base,
            TaxCategory.EXEMPT: self.exempt_base,
            TaxCategory.UNAFFECTED: self.unaffected_base,
        }[category]

    def formatted(self) -> dict[str, str]:
        from ..calculations import format_amount

        return {
            "taxed_base": format_amount(self.taxed_base),
            "exempt_base": format_amount(self.exempt_base),
            "unaffected_base": format_amount(self.unaffected_base),
            "tax_amount": format_amount(self.tax_amount),
            "grand_total": format_amount(self.grand_total),
        }


class CompanyProfile(BaseModel):
    """Issuer profile. One per deployment, changed only through the store's save."""

    ruc: str
    legal_name: str
    address: str = ""
    ubigeo: str = "150101"
    invoice_series: str = "F001"
    receipt_series: str = "B001"
    credit_note_series: str = "FC01"
    sol_user: str = "MODDATOS"
    sol_pass: str = "MODDATOS"
    logo_url: str | None = None
    api_token: str | None = None
    whatsapp_instance: str | None = None
    whatsapp_token: str | None = None

    @field_validator("invoice_series", "receipt_series", "credit_note_series")
    @classmethod
    def _check_series(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 4 or not v.isalnum():
            raise ValueError(f"series must be 4 alphanumeric characters, got {v!r}")
        return v

    @classmethod
    def from_config(cls, config) -> "CompanyProfile":
        """Fallback profile used until one is saved."""
        return cls(
            ruc=config.company_ruc,
            legal_name=config.company_name,
            address=config.company_address,
            ubigeo=config.company_ubigeo,
            invoice_series=config.invoice_series,
            receipt_series=config.receipt_series,
            sol_user=config.sol_user,
            sol_pass=config.sol_pass,
            api_token=config.identity_api_token or None,
        )


class AuthorityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    description: str
    signed_xml: str = ""
    digest: str | None = None
    ticket: str | None = None
    cdr_ref: str | None = None


class Document(BaseModel):
    """
    A legal sales document.

    Created once at checkout completion. Only the authority fields change
    afterwards, exactly once, through ``finalize``.
    """
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    provisional_key: str
    kind: DocumentKind
    series: str
    correlative: int
    issued_at: datetime
    client: Client
    payment_term: PaymentTerm = PaymentTerm.CASH
    lines: tuple[LineItem, ...]
    totals: TaxBreakdown
    summary_payload: str = ""
    authority_status: AuthorityStatus = AuthorityStatus.PENDING
    authority_response: AuthorityResponse | None = None

    @field_validator("lines")
    @classmethod
    def _non_empty(cls, v: tuple[LineItem, ...]) -> tuple[LineItem, ...]:
        if not v:
            raise ValueError("a document needs at least one line")
        return v

    @field_validator("correlative")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("correlative must be positive")
        return v

    @property
    def padded_correlative(self) -> str:
        return str(self.correlative).zfill(8)

    @property
    def number(self) -> str:
        """Document identifier, e.g. B001-00000012."""
        return f"{self.series}-{self.padded_correlative}"

    def file_name(self, ruc: str) -> str:
        """Authority file name: RUC-KIND-SERIES-NUMBER."""
        return f"{ruc}-{self.kind.value}-{self.series}-{self.padded_correlative}"

    def finalize(
        self,
        response: AuthorityResponse,
        status: AuthorityStatus,
        summary_payload: str,
    ) -> "Document":
        if self.authority_status is not AuthorityStatus.PENDING:
            raise ValueError(f"{self.number} already finalized as {self.authority_status.value}")
        if status is AuthorityStatus.PENDING:
            raise ValueError("finalize needs a terminal status")
        return self.model_copy(
            update={
                "authority_status": status,
                "authority_response": response,
                "summary_payload": summary_payload,
            }
        )

    def with_id(self, id: str) -> "Document":
        """Swap the provisional key for the store-assigned id."""
        return self.model_copy(update={"id": id})
