"""
DNI / RUC lookup against a public identity API.

Used while registering clients. A failure here never blocks a sale: the
operator falls back to typing the name and address by hand.
"""
from __future__ import annotations
import requests
from dataclasses import dataclass
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base
from loguru import logger
from typing import Optional

from ..config import PosConfig
from ..errors import IntegrationFailure
from ..models import ClientDocType

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "sunat-pos/1.0",
}

ENDPOINTS = {
    ClientDocType.DNI: "reniec/dni",
    ClientDocType.RUC: "sunat/ruc",
}


@dataclass(frozen=True)
class LookupResult:
    doc_type: ClientDocType
    doc_number: str
    name: str
    address: str = ""


class _Retryable(Exception):
    pass


def _first(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value).strip()
    return ""


def normalize_person(data: dict, number: str) -> Optional[LookupResult]:
    """Build a DNI result from the English or Spanish field variants."""
    full_name = _first(data, "full_name")
    if not full_name:
        if data.get("first_name") or data.get("first_last_name"):
            parts = [data.get("first_name"), data.get("first_last_name"), data.get("second_last_name")]
        else:
            parts = [
                _first(data, "nombres", "Nombres", "nombre"),
                _first(data, "apellidoPaterno", "apellido_paterno", "ApellidoPaterno"),
                _first(data, "apellidoMaterno", "apellido_materno", "ApellidoMaterno"),
            ]
        full_name = " ".join(p.strip() for p in parts if p and p.strip())
    if not full_name:
        return None
    return LookupResult(
        doc_type=ClientDocType.DNI,
        doc_number=_first(data, "document_number", "dni") or number,
        name=full_name,
    )


def normalize_company(data: dict, number: str) -> Optional[LookupResult]:
    """Build a RUC result; the address is assembled from parts when missing."""
    name = _first(data, "razonSocial", "razon_social", "nombreComercial", "nombre_comercial", "nombre")
    if not name:
        return None
    address = _first(data, "direccion", "direccion_completa")
    if not address:
        parts = [_first(data, k) for k in ("departamento", "provincia", "distrito")]
        address = " - ".join(p for p in parts if p)
    return LookupResult(
        doc_type=ClientDocType.RUC,
        doc_number=_first(data, "ruc") or number,
        name=name,
        address=address,
    )


class IdentityLookup:
    """
    Client for the identity API.

    Usage:
        with IdentityLookup(config, token) as lookup:
            result = lookup.search(ClientDocType.DNI, "12345678")
    """

    def __init__(
        self,
        config: Optional[PosConfig] = None,
        api_token: Optional[str] = None,
        wait: Optional[wait_base] = None,
    ):
        self.config = config or PosConfig.from_env()
        self.base_url = self.config.identity_api_url.rstrip("/")
        self.api_token = api_token if api_token is not None else self.config.identity_api_token
        self.session = requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.wait = wait or wait_exponential(multiplier=1, min=1, max=10)

    def _get(self, url: str, number: str) -> requests.Response:
        try:
            r = self.session.get(
                url,
                params={"numero": number},
                headers={"Authorization": f"Bearer {self.api_token}"},
                timeout=self.config.identity_timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise _Retryable(str(e)) from e
        if r.status_code >= 500:
            raise _Retryable(f"server error {r.status_code}")
        return r

    def search(self, doc_type: ClientDocType, number: str) -> Optional[LookupResult]:
        """
        Look up a DNI or RUC.

        Returns:
            LookupResult, or None when not configured or not found

        Raises:
            IntegrationFailure: If the service is unreachable or misbehaves
        """
        number = (number or "").strip()
        if doc_type not in ENDPOINTS:
            raise ValueError(f"Lookup needs DNI or RUC, got {doc_type.value!r}")
        if not self.api_token:
            logger.warning("Identity API token not configured, skipping lookup")
            return None
        if not number:
            return None

        url = f"{self.base_url}/{ENDPOINTS[doc_type]}"
        logger.info(f"Looking up {doc_type.value} {number}")

        retrying = Retrying(
            wait=self.wait,
            stop=stop_after_attempt(self.config.identity_retry_attempts),
            retry=retry_if_exception_type(_Retryable),
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying identity lookup (attempt {retry_state.attempt_number})..."
            ),
        )
        try:
            r = retrying(self._get, url, number)
        except RetryError as e:
            raise IntegrationFailure(
                f"Identity service unreachable: {e.last_attempt.exception()}"
            ) from e

        if r.status_code in (404, 422):
            logger.warning(f"{doc_type.value} {number} not found")
            return None
        if not r.ok:
            raise IntegrationFailure(f"Identity service returned HTTP {r.status_code}")

        try:
            raw = r.json()
        except ValueError as e:
            raise IntegrationFailure(f"Identity service returned invalid JSON: {e}") from e

        data = (raw.get("data") or raw.get("result") or raw) if isinstance(raw, dict) else None
        if not data:
            return None
        if doc_type is ClientDocType.DNI:
            return normalize_person(data, number)
        return normalize_company(data, number)

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
