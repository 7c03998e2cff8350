"""
Send a finished sale to the customer over a WhatsApp gateway.

Gateways differ; the company profile holds either a full instance URL or a
bare instance id for the default provider. When no gateway is configured the
click-to-chat link is the fallback.
"""
from __future__ import annotations
import re
import requests
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote
from loguru import logger

from ..calculations import format_amount
from ..config import PosConfig
from ..models import CompanyProfile, Document

CLICK_TO_CHAT_URL = "https://wa.me"


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message: str


def clean_phone(phone: str) -> str:
    """Keep digits only, e.g. '+51 999-888-777' -> '51999888777'."""
    return re.sub(r"\D", "", phone or "")


class WhatsAppDispatcher:
    def __init__(self, config: Optional[PosConfig] = None):
        self.config = config or PosConfig.from_env()
        self.session = requests.Session()

    def endpoint(self, instance: str) -> str:
        if instance.startswith("http"):
            return f"{instance.rstrip('/')}/send-message"
        return f"{self.config.whatsapp_api_url.rstrip('/')}/instance{instance}/sendMessage"

    def format_message(self, document: Document, company: CompanyProfile) -> str:
        """Customer-facing text: header, totals, then one line per item."""
        out = [
            f"*{company.legal_name}*",
            f"RUC: {company.ruc}",
            "",
            "Hola, adjuntamos su comprobante electrónico.",
            "",
            f"📄 *{document.kind.label}*: {document.number}",
            f"📅 *Fecha*: {document.issued_at.strftime('%d/%m/%Y')}",
            f"👤 *Cliente*: {document.client.name}",
            f"💰 *TOTAL*: S/ {format_amount(document.totals.grand_total)}",
            "",
            "*Detalle:*",
        ]
        for line in document.lines:
            out.append(
                f"- {line.quantity} x {line.description} (S/ {format_amount(line.line_total)})"
            )
        out.append("")
        out.append("Gracias por su preferencia.")
        return "\n".join(out)

    def send(self, document: Document, company: CompanyProfile, phone: str) -> DispatchResult:
        """
        Post the formatted message to the gateway.

        Never raises for gateway problems; the caller shows the result message
        and may offer the click-to-chat link instead.
        """
        if not company.whatsapp_instance or not company.whatsapp_token:
            return DispatchResult(
                False, "WhatsApp credentials (instance/token) are missing in the company profile."
            )
        number = clean_phone(phone)
        if not number:
            return DispatchResult(False, "A phone number is required.")

        url = self.endpoint(company.whatsapp_instance)
        payload = {
            "phone": number,
            "message": self.format_message(document, company),
            "token": company.whatsapp_token,
        }
        logger.info(f"Sending {document.number} to {number} via {url}")
        try:
            r = self.session.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {company.whatsapp_token}"},
                timeout=self.config.whatsapp_timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"WhatsApp send failed for {document.number}: {e}")
            return DispatchResult(False, "Could not reach the WhatsApp API.")

        return DispatchResult(True, "Sent successfully")

    def click_to_chat_link(self, document: Document, company: CompanyProfile, phone: str) -> str:
        text = (
            f"Hola, le escribo de *{company.legal_name}*. Aquí su comprobante "
            f"*{document.kind.label} {document.number}* por el monto de "
            f"*S/ {format_amount(document.totals.grand_total)}*."
        )
        return f"{CLICK_TO_CHAT_URL}/{clean_phone(phone)}?text={quote(text)}"

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
