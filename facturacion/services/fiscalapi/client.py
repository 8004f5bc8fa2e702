# facturacion/services/fiscalapi/client.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from django.conf import settings

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from facturacion.exceptions import IssuerError
from facturacion.models import FiscalCredential

logger = logging.getLogger("facturacion.fiscalapi")


# =========================
# Configuración de endpoints FiscalAPI (tomados desde settings)
# =========================

FISCALAPI_TEST_URL = getattr(settings, "FISCALAPI_TEST_URL", "https://test.fiscalapi.com")
FISCALAPI_LIVE_URL = getattr(settings, "FISCALAPI_LIVE_URL", "https://live.fiscalapi.com")

PEOPLE_PATH = "/api/v4/people"
API_KEYS_PATH = "/api/v4/apikeys"
INCOME_INVOICE_PATH = "/api/v4/invoices/income"

USER_AGENT = "ClinicaCFDI/1.0 (Python/requests)"


def base_url_for(environment: str) -> str:
    if environment == FiscalCredential.ENV_PRODUCTION:
        return getattr(settings, "FISCALAPI_LIVE_URL", FISCALAPI_LIVE_URL)
    return getattr(settings, "FISCALAPI_TEST_URL", FISCALAPI_TEST_URL)


@dataclass
class IssuerResponse:
    """
    Contenedor de respuesta normalizada desde FiscalAPI.

    `accepted` marca un 2xx cuyo cuerpo no se pudo interpretar: el PAC procesó
    la solicitud aunque `ok` sea False, así que no debe tratarse como rechazo.
    """

    ok: bool
    status_code: int
    data: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    accepted: bool = False


def extract_error_message(response: requests.Response) -> str:
    """
    FiscalAPI no garantiza la forma del error: si el cuerpo es JSON se toma
    `details`, luego `message`, luego el JSON completo; si no, el texto tal cual.
    """
    text = response.text or ""
    try:
        body = json.loads(text)
    except ValueError:
        return text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        for key in ("details", "message"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return json.dumps(body, ensure_ascii=False)


def _unwrap(body: Any) -> Dict[str, Any]:
    # Las respuestas exitosas vienen envueltas en {"data": {...}}; algunas no.
    if isinstance(body, dict):
        inner = body.get("data")
        if isinstance(inner, dict):
            return inner
        return body
    return {"value": body}


class FiscalAPIClient:
    """
    Cliente REST para FiscalAPI v4:

    - POST /api/v4/people            -> crear persona (emisor o receptor)
    - POST /api/v4/apikeys           -> crear API key para una persona
    - POST /api/v4/invoices/income   -> timbrar factura de ingreso

    Cada solicitud lleva X-TENANT-KEY (de la plataforma) y X-API-KEY (maestra
    para aprovisionamiento, o la de la clínica para timbrar).

    Solo se reintenta el establecimiento de conexión: una solicitud que llegó
    al PAC nunca se reenvía, porque volver a timbrar duplica el CFDI.
    """

    def __init__(
        self,
        environment: str,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
    ):
        self.environment = environment
        self.base_url = base_url_for(environment).rstrip("/")
        self.timeout = timeout or getattr(settings, "FISCALAPI_REQUEST_TIMEOUT", 30)
        self._api_key = api_key

        if session is None:
            session = requests.Session()
            retry = Retry(
                total=None,
                connect=getattr(settings, "FISCALAPI_CONNECT_RETRIES", 0),
                read=0,
                status=0,
                redirect=0,
                backoff_factor=1,
                allowed_methods=None,
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        session.headers.update({"User-Agent": USER_AGENT})
        self.session = session

        logger.debug(
            "FiscalAPIClient listo ambiente=%s base_url=%s timeout=%s",
            environment,
            self.base_url,
            self.timeout,
        )

    # -------------------------
    # Helpers
    # -------------------------

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "X-TENANT-KEY": getattr(settings, "FISCALAPI_TENANT_KEY", ""),
            "X-API-KEY": self._api_key,
            "Content-Type": "application/json",
            "X-TIME-ZONE": getattr(settings, "FISCALAPI_TIMEZONE", "America/Mexico_City"),
        }
        if idempotency_key:
            headers["X-IDEMPOTENCY-KEY"] = idempotency_key
        return headers

    def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        *,
        idempotency_key: Optional[str] = None,
    ) -> IssuerResponse:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(
                url,
                json=payload,
                headers=self._headers(idempotency_key),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Error de red/timeout al llamar a FiscalAPI %s: %s", path, exc)
            raise IssuerError(
                "No fue posible conectarse con FiscalAPI. "
                "Verifique la conexión o inténtelo nuevamente.",
            ) from exc

        if not response.ok:
            message = extract_error_message(response)
            logger.warning(
                "FiscalAPI %s respondió %s: %s",
                path,
                response.status_code,
                message,
            )
            return IssuerResponse(
                ok=False,
                status_code=response.status_code,
                message=message,
            )

        try:
            body = response.json()
        except ValueError:
            logger.error("FiscalAPI %s devolvió %s sin JSON válido.", path, response.status_code)
            return IssuerResponse(
                ok=False,
                status_code=response.status_code,
                message="La respuesta de FiscalAPI no es JSON válido.",
                accepted=True,
            )

        logger.info("FiscalAPI %s respondió %s", path, response.status_code)
        return IssuerResponse(ok=True, status_code=response.status_code, data=_unwrap(body))

    # -------------------------
    # Operaciones
    # -------------------------

    def create_person(self, payload: Dict[str, Any]) -> IssuerResponse:
        return self._post(PEOPLE_PATH, payload)

    def create_api_key(self, person_id: str, description: str) -> IssuerResponse:
        return self._post(
            API_KEYS_PATH,
            {"personId": person_id, "description": description},
        )

    def create_income_invoice(
        self,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> IssuerResponse:
        return self._post(INCOME_INVOICE_PATH, payload, idempotency_key=idempotency_key)


def get_fiscalapi_client(environment: str, api_key: Optional[str] = None) -> FiscalAPIClient:
    """
    Factory usada por los servicios. Sin api_key se usa la llave maestra de la
    plataforma (operaciones de aprovisionamiento).
    """
    key = api_key if api_key is not None else getattr(settings, "FISCALAPI_MASTER_KEY", "")
    return FiscalAPIClient(environment, key)
