"""
UBL 2.1 serialization of sales documents.

Renders invoices and receipts into the structure the authority validates:
signature placeholder, header, issuer, customer, payment terms, tax totals,
monetary totals and one InvoiceLine per sold item. Field order and the
two-decimal amounts are part of the contract.

Line figures are re-derived from each line with the same IGV rule as
compute_totals, never copied from the document breakdown, so the sum of the
lines can differ from the header by a cent.
"""
from __future__ import annotations
import base64
import hashlib
import io
import zipfile
from jinja2 import Template

from .calculations import IGV_DIVISOR, format_amount, split_line
from .models import CompanyProfile, Document, DocumentKind, PaymentTerm, TaxCategory
from .templates import load_template

CURRENCY = "PEN"


def cdata(value: str) -> str:
    """Wrap free text in a CDATA section."""
    return "<![CDATA[" + (value or "").replace("]]>", "]]]]><![CDATA[>") + "]]>"


def b64_digest(algorithm: str, payload: str) -> str:
    raw = hashlib.new(algorithm, payload.encode("utf-8")).digest()
    return base64.b64encode(raw).decode("ascii")


def placeholder_signature(document: Document, company: CompanyProfile) -> tuple[str, str]:
    """
    Stand-in (DigestValue, SignatureValue) pair.

    Derived from the document identity so re-rendering gives the same text.
    Not a real XML-DSig signature.
    """
    seed = "|".join([
        company.ruc,
        document.kind.value,
        document.number,
        document.issued_at.isoformat(),
        format_amount(document.totals.grand_total),
        document.client.doc_number,
    ])
    return b64_digest("sha1", seed), b64_digest("sha256", seed)


def _tax_subtotals(document: Document) -> list[dict]:
    totals = document.totals
    subtotals = []
    for category in (TaxCategory.TAXED, TaxCategory.EXEMPT, TaxCategory.UNAFFECTED):
        base = totals.base_for(category)
        if base <= 0:
            continue
        tax = totals.tax_amount if category is TaxCategory.TAXED else 0
        subtotals.append({
            "taxable_amount": format_amount(base),
            "tax_amount": format_amount(tax),
            "scheme_id": category.scheme_id,
            "scheme_name": category.scheme_name,
        })
    return subtotals


def _line_context(index: int, line) -> dict:
    base, tax = split_line(line)
    if line.tax_category is TaxCategory.TAXED:
        unit_price_no_tax = line.unit_price / IGV_DIVISOR
    else:
        unit_price_no_tax = line.unit_price
    return {
        "index": index,
        "quantity": line.quantity,
        "unit_code": line.unit_code.value,
        "taxable_amount": format_amount(base),
        "tax_amount": format_amount(tax),
        "reference_price": format_amount(line.unit_price),
        "percent": f"{line.tax_category.percent:.2f}",
        "exemption_code": line.tax_category.value,
        "scheme_id": line.tax_category.scheme_id,
        "scheme_name": line.tax_category.scheme_name,
        "description": cdata(line.description),
        "unit_price_no_tax": format_amount(unit_price_no_tax),
    }


def build_context(document: Document, company: CompanyProfile) -> dict:
    """Template variables for invoice.xml.j2, all amounts pre-formatted."""
    digest_value, signature_value = placeholder_signature(document, company)
    totals = document.totals
    client = document.client
    return {
        "digest_value": digest_value,
        "signature_value": signature_value,
        "number": document.number,
        "issue_date": document.issued_at.strftime("%Y-%m-%d"),
        "issue_time": document.issued_at.strftime("%H:%M:%S"),
        "type_code": document.kind.authority_code,
        "currency": CURRENCY,
        "issuer": {
            "ruc": company.ruc,
            "name": cdata(company.legal_name),
            "ubigeo": company.ubigeo,
        },
        "customer": {
            "identity_code": client.doc_type.identity_code,
            "doc_number": client.doc_number,
            "name": cdata(client.name),
        },
        "payment": {
            "means": document.payment_term.value,
            "amount": (
                format_amount(totals.grand_total)
                if document.payment_term is PaymentTerm.CREDIT
                else None
            ),
        },
        "totals": {
            "tax_amount": format_amount(totals.tax_amount),
            "line_extension": format_amount(totals.line_extension),
            "grand_total": format_amount(totals.grand_total),
        },
        "tax_subtotals": _tax_subtotals(document),
        "lines": [_line_context(i, line) for i, line in enumerate(document.lines, start=1)],
    }


def _render(template_name: str, **context) -> str:
    template = Template(
        load_template(template_name),
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )
    return template.render(**context)


def render_invoice(document: Document, company: CompanyProfile) -> str:
    """Render a finalized invoice or receipt as UBL 2.1 XML."""
    if document.kind is DocumentKind.SALE_NOTE:
        raise ValueError("Sale notes are internal and have no UBL representation")
    return _render("invoice", **build_context(document, company))


def zip_payload(file_name: str, xml: str) -> str:
    """Base64 of the zip the authority expects: one RUC-KIND-SERIES-NUMBER.xml entry."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        info = zipfile.ZipInfo(f"{file_name}.xml", date_time=(1980, 1, 1, 0, 0, 0))
        zf.writestr(info, xml.encode("iso-8859-1", errors="replace"))
    return base64.b64encode(buf.getvalue()).decode("ascii")


def render_send_bill(document: Document, company: CompanyProfile, xml: str) -> str:
    """Render the SOAP sendBill envelope for a rendered invoice."""
    file_name = document.file_name(company.ruc)
    return _render(
        "send_bill",
        username=f"{company.ruc}{company.sol_user}",
        password=company.sol_pass,
        zip_name=f"{file_name}.zip",
        content=zip_payload(file_name, xml),
    )
