"""
Tax apportionment.

Splits cart lines into IGV-taxed, exempt and unaffected bases plus the IGV
amount. Prices are tax-inclusive; the taxed base is recovered by dividing by
1.18 on the unrounded line total.
"""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from .errors import ValidationError
from .models import ZERO, LineItem, TaxBreakdown, TaxCategory

IGV_RATE = Decimal("0.18")
IGV_DIVISOR = Decimal("1.18")
CENT = Decimal("0.01")


def round_amount(value: Decimal) -> Decimal:
    """Round to two decimals, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Format a monetary value with exactly two decimals."""
    return f"{round_amount(value):.2f}"


def check_line(line: LineItem) -> None:
    if line.unit_price < 0:
        raise ValidationError(f"Negative price on line {line.description!r}: {line.unit_price}")
    if line.quantity < 1:
        raise ValidationError(f"Quantity must be a positive integer on line {line.description!r}")


def split_line(line: LineItem) -> tuple[Decimal, Decimal]:
    """Return (taxable base, tax amount) for one line, unrounded."""
    total = line.line_total
    if line.tax_category is TaxCategory.TAXED:
        base = total / IGV_DIVISOR
        return base, total - base
    return total, ZERO


def compute_totals(lines: Iterable[LineItem]) -> TaxBreakdown:
    taxed = exempt = unaffected = tax = ZERO
    for line in lines:
        check_line(line)
        base, line_tax = split_line(line)
        if line.tax_category is TaxCategory.TAXED:
            taxed += base
            tax += line_tax
        elif line.tax_category is TaxCategory.EXEMPT:
            exempt += base
        else:
            unaffected += base
    return TaxBreakdown(
        taxed_base=taxed,
        exempt_base=exempt,
        unaffected_base=unaffected,
        tax_amount=tax,
    )
