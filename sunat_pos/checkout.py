"""
Checkout orchestration.

Turns an open cart into a finalized, stored sales document:

    CART_OPEN -> VALIDATING -> SUBMITTING -> FINALIZED
                     |
                     +-> ABORTED

Validation failures abort with no side effects. Once submission starts the
attempt always ends FINALIZED. A submitter that raises counts as a rejection.
A store failure after that point is raised as PersistenceFailure carrying the
finalized document. Nothing is retried.
"""
from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from zoneinfo import ZoneInfo
from loguru import logger

from .calculations import compute_totals
from .cart import Cart
from .config import PosConfig
from .errors import PersistenceFailure, SubmissionRejected, ValidationError
from .models import (
    AuthorityResponse,
    AuthorityStatus,
    Client,
    ClientDocType,
    CompanyProfile,
    Document,
    DocumentKind,
    PaymentTerm,
)
from .numbering import SeriesLocks, next_correlative, series_for
from .store import RecordStore
from .submission import SubmissionAdapter
from .summary import build_summary_payload

ISSUABLE_KINDS = (DocumentKind.RECEIPT, DocumentKind.INVOICE, DocumentKind.SALE_NOTE)


class CheckoutState(str, Enum):
    CART_OPEN = "CART_OPEN"
    VALIDATING = "VALIDATING"
    SUBMITTING = "SUBMITTING"
    FINALIZED = "FINALIZED"
    ABORTED = "ABORTED"


_TRANSITIONS = {
    CheckoutState.CART_OPEN: {CheckoutState.VALIDATING},
    CheckoutState.VALIDATING: {CheckoutState.SUBMITTING, CheckoutState.ABORTED},
    CheckoutState.SUBMITTING: {CheckoutState.FINALIZED},
    CheckoutState.FINALIZED: set(),
    CheckoutState.ABORTED: set(),
}


@dataclass(frozen=True)
class CheckoutRequest:
    kind: DocumentKind
    client: Optional[Client]
    payment_term: PaymentTerm = PaymentTerm.CASH
    # operator confirmed a receipt for a client without any document
    confirm_undocumented: bool = False


@dataclass(frozen=True)
class CheckoutResult:
    document: Document
    response: AuthorityResponse
    state: CheckoutState = CheckoutState.FINALIZED

    @property
    def status(self) -> AuthorityStatus:
        return self.document.authority_status

    @property
    def rejected(self) -> bool:
        return self.status is AuthorityStatus.REJECTED

    def raise_for_status(self) -> None:
        """Raise SubmissionRejected if the authority declined the document."""
        if self.rejected:
            raise SubmissionRejected(
                f"{self.document.number} rejected: {self.response.description}",
                self.document,
            )


def validate_checkout(cart: Cart, request: CheckoutRequest) -> None:
    """Raise ValidationError if the checkout request cannot proceed."""
    if cart.is_empty:
        raise ValidationError("The cart is empty. Add products to continue.")

    client = request.client
    if client is None:
        raise ValidationError("A client must be selected to process the sale.")

    if not client.name or not client.name.strip() or client.name.strip() == "-":
        raise ValidationError("The client needs a valid name before the sale can be completed.")

    if request.kind not in ISSUABLE_KINDS:
        raise ValidationError(f"{request.kind.label} documents cannot be issued from checkout.")

    if request.kind is DocumentKind.INVOICE and client.doc_type is not ClientDocType.RUC:
        raise ValidationError("To issue an INVOICE (factura) the client must have a RUC.")

    if (
        request.kind is DocumentKind.RECEIPT
        and client.doc_type is ClientDocType.NONE
        and not request.confirm_undocumented
    ):
        raise ValidationError(
            "The client has no identity document. Confirm to issue the RECEIPT (boleta) anyway; "
            "this is only allowed for small amounts.",
            requires_confirmation=True,
        )


def status_for(kind: DocumentKind, response: AuthorityResponse) -> AuthorityStatus:
    if kind is DocumentKind.SALE_NOTE:
        return AuthorityStatus.INTERNAL
    return AuthorityStatus.ACCEPTED if response.success else AuthorityStatus.REJECTED


class CheckoutAttempt:
    """
    State of a single checkout.

    Each attempt walks the state machine on its own, so attempts sharing an
    orchestrator never see each other's state. After ``run`` returns or
    raises, ``state`` is terminal (FINALIZED or ABORTED).
    """

    def __init__(self, orchestrator: "CheckoutOrchestrator"):
        self.orchestrator = orchestrator
        self.state = CheckoutState.CART_OPEN

    def _transition(self, new_state: CheckoutState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid checkout transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Checkout {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _submit(self, pending: Document, company: CompanyProfile) -> AuthorityResponse:
        try:
            return self.orchestrator.submitter.submit(pending, company)
        except Exception as e:
            logger.error(f"Submission of {pending.number} failed: {e}")
            return AuthorityResponse(success=False, description=f"Submission failed: {e}")

    def run(self, cart: Cart, request: CheckoutRequest) -> CheckoutResult:
        orchestrator = self.orchestrator
        self._transition(CheckoutState.VALIDATING)
        try:
            validate_checkout(cart, request)
            lines = cart.lines()
            totals = compute_totals(lines)
        except ValidationError as e:
            logger.info(f"Checkout aborted: {e}")
            self._transition(CheckoutState.ABORTED)
            raise

        kind = request.kind
        company = orchestrator.company
        series = series_for(kind, company)

        with orchestrator.locks.hold(series):
            try:
                history = orchestrator.store.list_documents()
            except Exception:
                self._transition(CheckoutState.ABORTED)
                raise
            correlative = next_correlative(history, kind)

            pending = Document(
                provisional_key=f"tmp-{uuid.uuid4().hex}",
                kind=kind,
                series=series,
                correlative=correlative,
                issued_at=orchestrator.clock(),
                client=request.client.model_copy(deep=True),
                payment_term=request.payment_term,
                lines=lines,
                totals=totals,
            )
            logger.info(
                f"Issuing {kind.label} {pending.number} for {pending.client.name} "
                f"(total {pending.totals.formatted()['grand_total']})"
            )

            self._transition(CheckoutState.SUBMITTING)
            try:
                response = self._submit(pending, company)
                status = status_for(kind, response)
                summary = build_summary_payload(pending, company, digest=response.digest)
                document = pending.finalize(response, status, summary)
                cart.clear()
            finally:
                self._transition(CheckoutState.FINALIZED)

            try:
                stored = orchestrator.store.create_document(document)
            except Exception as e:
                logger.error(
                    f"{document.number} is {status.value} at the authority but could not be "
                    f"stored locally: {e}"
                )
                raise PersistenceFailure(
                    f"Sale {document.number} was processed ({status.value}) but saving it "
                    f"to the local database failed: {e}",
                    document,
                    cause=e,
                ) from e

        logger.info(f"{stored.number} finalized as {status.value}")
        return CheckoutResult(document=stored, response=response, state=self.state)


class CheckoutOrchestrator:
    """
    Issues documents from carts.

    Holds only shared collaborators; every checkout gets its own
    CheckoutAttempt. The per-series lock spans numbering through storage, so
    concurrent checkouts on one instance draw distinct correlatives.

    Usage:
        orchestrator = CheckoutOrchestrator(store, company)
        result = orchestrator.checkout(cart, CheckoutRequest(DocumentKind.RECEIPT, client))
        print(result.document.number, result.status)

        # Inspect the state of a failed attempt
        attempt = orchestrator.begin()
        try:
            attempt.run(cart, request)
        except ValidationError:
            assert attempt.state is CheckoutState.ABORTED
    """

    def __init__(
        self,
        store: RecordStore,
        company: CompanyProfile,
        submitter: Optional[SubmissionAdapter] = None,
        config: Optional[PosConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[SeriesLocks] = None,
    ):
        self.config = config or PosConfig.from_env()
        self.store = store
        self.company = company
        self.submitter = submitter or SubmissionAdapter(self.config)
        self.clock = clock or (lambda: datetime.now(ZoneInfo(self.config.timezone)))
        self.locks = locks or SeriesLocks()

    def begin(self) -> CheckoutAttempt:
        return CheckoutAttempt(self)

    def checkout(self, cart: Cart, request: CheckoutRequest) -> CheckoutResult:
        return self.begin().run(cart, request)
