# facturacion/utils.py

"""
Utilidades comunes para facturación CFDI:

- extract_zip_code: primer código postal de 5 dígitos en un texto libre.
- resolve_zip_code: CP estructurado con respaldo a la extracción por regex.
- payment_form_code: método de pago interno -> c_FormaPago del SAT.
- synthetic_login / generate_strong_password: credenciales de la persona en FiscalAPI.
- issuance_idempotency_key: token determinístico por pago.
- issuer_timestamp: fecha de emisión en el formato que espera FiscalAPI.

Estas funciones NO dependen de modelos; solo de settings y de timezone.
"""

from __future__ import annotations

import re
import secrets
import uuid
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.utils import timezone

_ZIP_CODE_RE = re.compile(r"\b\d{5}\b")
_ZIP_CODE_EXACT_RE = re.compile(r"^\d{5}$")

# c_FormaPago
PAYMENT_FORM_CODES = {
    "cash": "01",  # Efectivo
    "transfer": "03",  # Transferencia electrónica de fondos
    "card": "04",  # Tarjeta de crédito / débito
}
PAYMENT_FORM_TO_BE_DEFINED = "99"  # Por definir

IDEMPOTENCY_NAMESPACE = uuid.UUID("6f1c2a52-8d0e-4b7a-9a55-3f4e0c1d2b7e")


def extract_zip_code(text: Optional[str]) -> Optional[str]:
    """
    Devuelve la primera secuencia aislada de 5 dígitos (CP mexicano) o None.

    >>> extract_zip_code("Calle Falsa 123, Col. Centro, CDMX, 06000")
    '06000'
    """
    if not text:
        return None
    match = _ZIP_CODE_RE.search(text)
    return match.group(0) if match else None


def resolve_zip_code(structured: Optional[str], free_text: Optional[str]) -> Optional[str]:
    """
    Prioriza el CP capturado como campo; la extracción desde la dirección
    queda solo para registros que aún no lo tienen.
    """
    value = (structured or "").strip()
    if _ZIP_CODE_EXACT_RE.match(value):
        return value
    return extract_zip_code(free_text)


def payment_form_code(method: Optional[str]) -> str:
    return PAYMENT_FORM_CODES.get((method or "").strip().lower(), PAYMENT_FORM_TO_BE_DEFINED)


def synthetic_login(rfc: str) -> str:
    """Email único y no funcional para la persona de la clínica en FiscalAPI."""
    domain = getattr(settings, "FISCALAPI_LOGIN_DOMAIN", "zegna.app")
    return f"{rfc.strip().lower()}@{domain}"


def generate_strong_password() -> str:
    # El sufijo garantiza mayúscula, dígito y símbolo para la política de FiscalAPI.
    return f"{secrets.token_urlsafe(24)}A1!"


def issuance_idempotency_key(payment_id: int | str) -> str:
    return str(uuid.uuid5(IDEMPOTENCY_NAMESPACE, f"payment:{payment_id}"))


def issuer_timestamp(now: Optional[datetime] = None) -> str:
    """Fecha local sin zona horaria, precisión de segundos: YYYY-MM-DDTHH:MM:SS."""
    now = now or timezone.now()
    if timezone.is_aware(now):
        now = timezone.localtime(now)
    return now.strftime("%Y-%m-%dT%H:%M:%S")
