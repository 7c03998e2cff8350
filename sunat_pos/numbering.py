"""
Document numbering.

Correlatives are derived from the document history every time; there is no
stored counter. The series comes from the company profile, except for sale
notes which always use a fixed internal series.
"""
from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Generator, Iterable
from loguru import logger

from .models import CompanyProfile, Document, DocumentKind

SALE_NOTE_SERIES = "NV01"


def next_correlative(history: Iterable[Document], kind: DocumentKind) -> int:
    """Highest correlative seen for ``kind`` plus one, or 1 for a fresh kind."""
    last = max((d.correlative for d in history if d.kind is kind), default=0)
    return last + 1


def series_for(kind: DocumentKind, company: CompanyProfile) -> str:
    if kind is DocumentKind.SALE_NOTE:
        return SALE_NOTE_SERIES
    if kind is DocumentKind.INVOICE:
        return company.invoice_series
    if kind is DocumentKind.RECEIPT:
        return company.receipt_series
    return company.credit_note_series


class SeriesLocks:
    """
    One lock per series.

    Held from numbering until the new document is in the history, so
    checkouts in the same process never draw the same correlative.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, series: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(series, threading.Lock())

    @contextmanager
    def hold(self, series: str) -> Generator[None, None, None]:
        lock = self._lock_for(series)
        if not lock.acquire(blocking=False):
            logger.debug(f"Waiting for numbering lock on series {series}")
            lock.acquire()
        try:
            yield
        finally:
            lock.release()
