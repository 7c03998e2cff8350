"""
Utilities for reading UBL documents back.

Provides:
- XML sanitization
- Namespace-aware text extraction
- Amount parsing
- Digest extraction for the submission adapter
- A flat summary of a rendered invoice (CLI inspect, tests)
"""
from __future__ import annotations
import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from lxml import etree
from loguru import logger

NS = {
    "inv": "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2",
    "cac": "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2",
    "cbc": "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2",
    "ds": "http://www.w3.org/2000/09/xmldsig#",
    "ext": "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2",
}


def sanitize_xml(xml_text: str) -> str:
    """
    Remove characters XML 1.0 does not allow.

    Free-text fields (client names, product descriptions) come from operator
    input and may carry control characters.
    """
    if not xml_text:
        return xml_text

    xml_text = xml_text.replace("\x00", "")
    xml_text = re.sub(r"&#([0-8]|1[0-2]|1[4-9]|2[0-9]|3[01]);", "", xml_text)
    xml_text = re.sub(r"&#x([0-8bBcCeEfF]|1[0-9a-fA-F]);", "", xml_text)
    return "".join(
        c if (
            c in "\t\n\r" or
            0x20 <= ord(c) <= 0xD7FF or
            0xE000 <= ord(c) <= 0xFFFD
        ) else ""
        for c in xml_text
    )


def parse_xml(xml_text: str) -> etree._Element:
    """Parse a UBL string, honouring its encoding declaration."""
    sanitized = sanitize_xml(xml_text)
    encoding = "utf-8"
    match = re.match(r"<\?xml[^>]*encoding=[\"']([^\"']+)[\"']", sanitized)
    if match:
        encoding = match.group(1)
    parser = etree.XMLParser(strip_cdata=True, resolve_entities=False)
    return etree.fromstring(sanitized.encode(encoding, errors="replace"), parser)


def text(element: etree._Element | None, path: str, default: str | None = None) -> str | None:
    """
    Safely extract text from a child element.

    Args:
        element: Parent XML element
        path: Namespaced path, e.g. 'cbc:ID'
        default: Default value if not found

    Returns:
        Stripped text content or default
    """
    if element is None:
        return default

    child = element.find(path, NS)
    if child is None or child.text is None:
        return default

    return child.text.strip() or default


def parse_amount(s: str | None, default: Decimal = Decimal("0")) -> Decimal:
    """Parse a monetary string into Decimal; empty or invalid gives default."""
    if not s:
        return default
    try:
        return Decimal(s.strip().replace(",", ""))
    except InvalidOperation:
        logger.warning(f"Could not parse amount: {s}")
        return default


def extract_digest_value(xml_text: str) -> Optional[str]:
    """Return the ds:DigestValue text, or None if the document has none."""
    try:
        root = parse_xml(xml_text)
    except etree.XMLSyntaxError as e:
        logger.warning(f"Could not parse XML for digest: {e}")
        return None
    node = root.find(".//ds:DigestValue", NS)
    if node is None or not (node.text or "").strip():
        return None
    return node.text.strip()


def _tax_subtotal(el: etree._Element) -> dict:
    return {
        "taxable_amount": parse_amount(text(el, "cbc:TaxableAmount")),
        "tax_amount": parse_amount(text(el, "cbc:TaxAmount")),
        "percent": text(el, "cac:TaxCategory/cbc:Percent"),
        "exemption_code": text(el, "cac:TaxCategory/cbc:TaxExemptionReasonCode"),
        "scheme_id": text(el, "cac:TaxCategory/cac:TaxScheme/cbc:ID"),
        "scheme_name": text(el, "cac:TaxCategory/cac:TaxScheme/cbc:Name"),
    }


def parse_invoice(xml_text: str) -> dict:
    """
    Flatten a rendered UBL invoice into a dict.

    Only the fields this system writes are read back.
    """
    root = parse_xml(xml_text)

    customer_id = root.find("cac:AccountingCustomerParty/cac:Party/cac:PartyIdentification/cbc:ID", NS)
    tax_total = root.find("cac:TaxTotal", NS)
    monetary = root.find("cac:LegalMonetaryTotal", NS)

    lines = []
    for line in root.findall("cac:InvoiceLine", NS):
        qty = line.find("cbc:InvoicedQuantity", NS)
        subtotal = line.find("cac:TaxTotal/cac:TaxSubtotal", NS)
        lines.append({
            "index": int(text(line, "cbc:ID", "0")),
            "quantity": int(qty.text.strip()) if qty is not None and qty.text else 0,
            "unit_code": qty.get("unitCode") if qty is not None else None,
            "line_extension": parse_amount(text(line, "cbc:LineExtensionAmount")),
            "reference_price": parse_amount(
                text(line, "cac:PricingReference/cac:AlternativeConditionPrice/cbc:PriceAmount")
            ),
            "tax_amount": parse_amount(text(line, "cac:TaxTotal/cbc:TaxAmount")),
            "description": text(line, "cac:Item/cbc:Description"),
            "price": parse_amount(text(line, "cac:Price/cbc:PriceAmount")),
            **{f"tax_{k}": v for k, v in _tax_subtotal(subtotal).items()},
        })

    return {
        "id": text(root, "cbc:ID"),
        "issue_date": text(root, "cbc:IssueDate"),
        "issue_time": text(root, "cbc:IssueTime"),
        "type_code": text(root, "cbc:InvoiceTypeCode"),
        "currency": text(root, "cbc:DocumentCurrencyCode"),
        "digest_value": text(root, ".//ds:DigestValue"),
        "supplier_ruc": text(root, "cac:AccountingSupplierParty/cac:Party/cac:PartyIdentification/cbc:ID"),
        "supplier_ubigeo": text(
            root,
            "cac:AccountingSupplierParty/cac:Party/cac:PartyLegalEntity/cac:RegistrationAddress/cbc:ID",
        ),
        "customer_scheme": customer_id.get("schemeID") if customer_id is not None else None,
        "customer_doc_number": text(root, "cac:AccountingCustomerParty/cac:Party/cac:PartyIdentification/cbc:ID"),
        "customer_name": text(
            root, "cac:AccountingCustomerParty/cac:Party/cac:PartyLegalEntity/cbc:RegistrationName"
        ),
        "payment_means": text(root, "cac:PaymentTerms/cbc:PaymentMeansID"),
        "payment_amount": text(root, "cac:PaymentTerms/cbc:Amount"),
        "tax_amount": parse_amount(text(tax_total, "cbc:TaxAmount")),
        "tax_subtotals": [
            _tax_subtotal(el) for el in (tax_total.findall("cac:TaxSubtotal", NS) if tax_total is not None else [])
        ],
        "line_extension": parse_amount(text(monetary, "cbc:LineExtensionAmount")),
        "tax_inclusive": parse_amount(text(monetary, "cbc:TaxInclusiveAmount")),
        "payable": parse_amount(text(monetary, "cbc:PayableAmount")),
        "lines": lines,
    }
