"""
Error taxonomy for the checkout pipeline.

None of these are retried automatically; each carries enough detail for the
caller to decide on a manual retry.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Document


class PosError(Exception):
    """Base class for point-of-sale errors."""
    pass


class ValidationError(PosError):
    """
    Checkout preconditions unmet.

    Raised before anything is numbered, submitted or stored. When
    ``requires_confirmation`` is set the block is lifted by operator
    confirmation rather than by changing the input.
    """

    def __init__(self, message: str, requires_confirmation: bool = False):
        super().__init__(message)
        self.requires_confirmation = requires_confirmation


class SubmissionRejected(PosError):
    """The authority declined the document. It is still finalized and stored."""

    def __init__(self, message: str, document: "Document"):
        super().__init__(message)
        self.document = document


class PersistenceFailure(PosError):
    """
    The record store failed after the authority already has the document.

    The sale is legally complete; the local system just cannot find it.
    """

    def __init__(self, message: str, document: "Document", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.document = document
        self.cause = cause


class IntegrationFailure(PosError):
    """Identity lookup or messaging service unreachable. Never blocks checkout."""
    pass
