#!/usr/bin/env python3
"""
Command line interface.

Usage:
    # Run one checkout against the in-memory store
    python -m sunat_pos demo --kind receipt

    # Render a demo document's UBL XML (to stdout or a file)
    python -m sunat_pos render --kind invoice -o invoice.xml

    # Print the header and totals of a UBL invoice
    python -m sunat_pos inspect invoice.xml

    # Look up a DNI or RUC
    python -m sunat_pos lookup RUC 20100070970

    # Initialize the database schema and company profile
    python -m sunat_pos --init-db
"""
from __future__ import annotations
import argparse
import sys
from decimal import Decimal
from pathlib import Path
from loguru import logger

from .cart import Cart
from .checkout import CheckoutOrchestrator, CheckoutRequest
from .config import PosConfig
from .errors import IntegrationFailure, PersistenceFailure, ValidationError
from .integrations import IdentityLookup
from .log import configure_logging
from .models import (
    Client,
    ClientDocType,
    CompanyProfile,
    DocumentKind,
    PaymentTerm,
    Product,
    TaxCategory,
    UnitCode,
)
from .parsers import parse_invoice
from .store import InMemoryStore, PostgresStore, StoreError
from .submission import SubmissionAdapter
from .ubl import render_invoice

KINDS = {
    "invoice": DocumentKind.INVOICE,
    "receipt": DocumentKind.RECEIPT,
    "sale-note": DocumentKind.SALE_NOTE,
}

DEMO_PRODUCTS = [
    Product(name="Arroz Costeño 5kg", category="Abarrotes", price=Decimal("24.50"), stock=40),
    Product(name="Aceite Primor 1L", category="Abarrotes", price=Decimal("11.90"), stock=60),
    Product(name="Libro escolar", category="Librería", price=Decimal("35.00"), stock=10,
            tax_category=TaxCategory.EXEMPT),
    Product(name="Instalación de equipo", category="Servicios", price=Decimal("80.00"),
            tax_category=TaxCategory.UNAFFECTED, unit_code=UnitCode.ZZ),
]

DEMO_CLIENTS = {
    DocumentKind.INVOICE: Client(
        doc_type=ClientDocType.RUC, doc_number="20100070970",
        name="SUPERMERCADOS PERUANOS SOCIEDAD ANONIMA", address="Av. Morro Solar 1086, Lima",
    ),
    DocumentKind.RECEIPT: Client(doc_type=ClientDocType.DNI, doc_number="45678912", name="María Quispe"),
    DocumentKind.SALE_NOTE: Client(name="Cliente Varios"),
}


def seed_demo_store(config: PosConfig) -> InMemoryStore:
    store = InMemoryStore(company=CompanyProfile.from_config(config))
    for product in DEMO_PRODUCTS:
        store.create_product(product)
    for client in DEMO_CLIENTS.values():
        store.create_client(client)
    return store


def run_demo_checkout(config: PosConfig, kind: DocumentKind, accept: bool | None = None):
    """
    One checkout of every demo product against a fresh in-memory store.

    ``accept`` forces the authority outcome; None leaves it to the
    configured success rate. No latency is simulated.
    """
    store = seed_demo_store(config)
    adapter = SubmissionAdapter(
        config,
        decide=(lambda: accept) if accept is not None else None,
        sleep=lambda seconds: None,
    )
    orchestrator = CheckoutOrchestrator(store, store.get_company(), submitter=adapter, config=config)
    cart = Cart()
    for product in store.list_products():
        cart.add(product)
    request = CheckoutRequest(
        kind=kind,
        client=DEMO_CLIENTS[kind],
        payment_term=PaymentTerm.CASH,
    )
    return orchestrator.checkout(cart, request), store.get_company()


def cmd_demo(args, config: PosConfig) -> int:
    result, _ = run_demo_checkout(config, KINDS[args.kind])
    doc = result.document
    totals = doc.totals.formatted()
    print(f"{doc.kind.label} {doc.number}  [{result.status.value}]")
    print(f"  Client:     {doc.client.name}")
    for line in doc.lines:
        print(f"  {line.quantity:>3} x {line.description:<28} {line.line_total:>10}")
    print(f"  Taxed:      {totals['taxed_base']:>10}")
    print(f"  Exempt:     {totals['exempt_base']:>10}")
    print(f"  Unaffected: {totals['unaffected_base']:>10}")
    print(f"  IGV:        {totals['tax_amount']:>10}")
    print(f"  TOTAL:      {totals['grand_total']:>10}")
    print(f"  Authority:  {result.response.description}")
    print(f"  Summary:    {doc.summary_payload}")
    return 1 if result.rejected else 0


def cmd_render(args, config: PosConfig) -> int:
    kind = KINDS[args.kind]
    if kind is DocumentKind.SALE_NOTE:
        logger.error("Sale notes are internal and have no XML representation")
        return 1
    result, company = run_demo_checkout(config, kind, accept=True)
    xml = render_invoice(result.document, company)
    if args.output:
        Path(args.output).write_text(xml, encoding="iso-8859-1", errors="xmlcharrefreplace")
        logger.info(f"Wrote {result.document.number} to {args.output}")
    else:
        print(xml)
    return 0


def cmd_inspect(args, config: PosConfig) -> int:
    data = parse_invoice(Path(args.file).read_bytes().decode("iso-8859-1"))
    print(f"Document:  {data['id']} (type {data['type_code']})")
    print(f"Issued:    {data['issue_date']} {data['issue_time']}")
    print(f"Supplier:  {data['supplier_ruc']}")
    print(f"Customer:  {data['customer_name']} ({data['customer_doc_number']})")
    print(f"Payment:   {data['payment_means']}")
    for sub in data["tax_subtotals"]:
        print(f"  {sub['scheme_name']:<4} base {sub['taxable_amount']:>10}  tax {sub['tax_amount']:>10}")
    print(f"Tax:       {data['tax_amount']}")
    print(f"Payable:   {data['payable']}")
    print(f"Lines:     {len(data['lines'])}")
    print(f"Digest:    {data['digest_value']}")
    return 0


def cmd_lookup(args, config: PosConfig) -> int:
    doc_type = ClientDocType(args.doc_type.upper())
    with IdentityLookup(config) as lookup:
        result = lookup.search(doc_type, args.number)
    if result is None:
        print(f"{doc_type.value} {args.number}: not found")
        return 1
    print(f"{result.doc_type.value} {result.doc_number}: {result.name}")
    if result.address:
        print(f"  {result.address}")
    return 0


def init_db(config: PosConfig) -> int:
    with PostgresStore(config) as store:
        store.initialize_schema()
        if store.get_company() is None:
            store.save_company(CompanyProfile.from_config(config))
    print("Schema initialized successfully")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sunat_pos",
        description="SUNAT point-of-sale fiscal document engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Initialize database schema and company profile, then exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output except errors",
    )

    sub = parser.add_subparsers(dest="command")

    demo = sub.add_parser("demo", help="Run a checkout against the in-memory store")
    demo.add_argument("--kind", choices=list(KINDS), default="receipt")

    render = sub.add_parser("render", help="Render a demo document as UBL XML")
    render.add_argument("--kind", choices=["invoice", "receipt"], default="invoice")
    render.add_argument("-o", "--output", help="Write to this file instead of stdout")

    inspect = sub.add_parser("inspect", help="Summarize a UBL invoice file")
    inspect.add_argument("file")

    lookup = sub.add_parser("lookup", help="Look up a DNI or RUC")
    lookup.add_argument("doc_type", choices=["DNI", "RUC", "dni", "ruc"])
    lookup.add_argument("number")

    return parser


COMMANDS = {
    "demo": cmd_demo,
    "render": cmd_render,
    "inspect": cmd_inspect,
    "lookup": cmd_lookup,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = PosConfig.from_env()
    configure_logging(config, verbose=args.verbose, quiet=args.quiet)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error(f"Configuration error: {err}")
        return 1

    try:
        if args.init_db:
            return init_db(config)
        if not args.command:
            parser.print_help()
            return 1
        return COMMANDS[args.command](args, config)
    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        return 1
    except PersistenceFailure as e:
        logger.critical(f"{e}")
        return 2
    except (StoreError, IntegrationFailure) as e:
        logger.error(f"{e}")
        return 1
    except Exception as e:
        logger.exception(f"Command failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
