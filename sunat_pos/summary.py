"""Pipe-delimited summary payload printed as the QR code on issued documents."""
from __future__ import annotations
from typing import Optional

from .calculations import format_amount
from .models import CompanyProfile, Document


def build_summary_payload(
    document: Document,
    company: CompanyProfile,
    digest: Optional[str] = None,
) -> str:
    """
    ruc|kind|series|correlative|igv|total|date|client-doc-type|client-doc-number|digest|

    ``digest`` defaults to the one in the document's authority response, so
    the payload can be regenerated from any finalized document.
    """
    if digest is None and document.authority_response is not None:
        digest = document.authority_response.digest
    fields = [
        company.ruc,
        document.kind.value,
        document.series,
        document.padded_correlative,
        format_amount(document.totals.tax_amount),
        format_amount(document.totals.grand_total),
        document.issued_at.strftime("%Y-%m-%d"),
        document.client.doc_type.value,
        document.client.doc_number,
        digest or "",
    ]
    return "|".join(fields) + "|"
