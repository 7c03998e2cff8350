"""
Submission of documents to the tax authority (simulated).

This is the single place where a real implementation would sign the XML and
post the SOAP envelope. The simulation keeps the same request/response
contract: render, wait, decide, answer. No state survives between calls.
"""
from __future__ import annotations
import random
import time
import uuid
from typing import Callable, Optional
from loguru import logger

from .config import PosConfig
from .models import AuthorityResponse, CompanyProfile, Document, DocumentKind
from .parsers import extract_digest_value
from .ubl import b64_digest, render_invoice, render_send_bill

REJECTION_DESCRIPTION = (
    "Error 0156: El archivo ZIP esta corrupto o no contiene el XML esperado "
    "(Simulación de error SUNAT)."
)
SALE_NOTE_DESCRIPTION = "Nota de Venta generada."


def random_decision(success_rate: float, seed: Optional[int] = None) -> Callable[[], bool]:
    """Accept/reject decision drawn from a seedable generator."""
    rng = random.Random(seed)
    return lambda: rng.random() < success_rate


class SubmissionAdapter:
    """
    Simulated SUNAT bill service.

    Usage:
        adapter = SubmissionAdapter(config)
        response = adapter.submit(document, company)

        # Deterministic outcome for tests
        adapter = SubmissionAdapter(config, decide=lambda: False, sleep=lambda s: None)
    """

    def __init__(
        self,
        config: Optional[PosConfig] = None,
        decide: Optional[Callable[[], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or PosConfig.from_env()
        self.decide = decide or random_decision(self.config.success_rate, self.config.random_seed)
        self.sleep = sleep

    def submit(self, document: Document, company: CompanyProfile) -> AuthorityResponse:
        if document.kind is DocumentKind.SALE_NOTE:
            self.sleep(self.config.sale_note_delay)
            logger.info(f"Sale note {document.number} kept internal")
            return AuthorityResponse(success=True, description=SALE_NOTE_DESCRIPTION)

        xml = render_invoice(document, company)
        envelope = render_send_bill(document, company, xml)
        file_name = document.file_name(company.ruc)

        logger.info(f"Sending {file_name}.zip to {self.config.sunat_url} (simulated)")
        logger.debug(f"SOL user: {company.sol_user}")
        logger.debug(f"UBL XML:\n{xml}")
        logger.debug(f"SOAP envelope:\n{envelope}")

        self.sleep(self.config.latency)

        if not self.decide():
            logger.warning(f"{document.number} rejected by authority (simulated)")
            return AuthorityResponse(
                success=False,
                description=REJECTION_DESCRIPTION,
                signed_xml=xml,
            )

        digest = extract_digest_value(xml) or b64_digest("sha1", uuid.uuid4().hex)
        logger.info(f"{document.number} accepted by authority (simulated), digest {digest}")
        return AuthorityResponse(
            success=True,
            description=(
                f"La {document.kind.label} número {document.series}-{document.correlative} "
                f"ha sido ACEPTADA en el entorno de PRUEBAS (BETA)."
                if self.config.sunat_env == "beta"
                else f"La {document.kind.label} número {document.series}-{document.correlative} "
                f"ha sido ACEPTADA."
            ),
            signed_xml=xml,
            digest=digest,
            ticket=uuid.uuid4().hex[:15],
            cdr_ref=f"R-{file_name}.zip",
        )
