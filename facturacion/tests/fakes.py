# facturacion/tests/fakes.py
# -*- coding: utf-8 -*-
"""
Dobles de prueba compartidos: cliente FiscalAPI en memoria, codec con llaves
fijas y storage CSD en memoria. Ningún test contacta al PAC.
"""
from __future__ import annotations

import base64
from collections import defaultdict, deque
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Tuple

from django.contrib.auth import get_user_model
from django.core.files.base import ContentFile
from django.core.files.storage import InMemoryStorage

from clinicas.models import Clinic, Payment, Person, Service
from facturacion.models import FiscalCredential
from facturacion.services.fiscalapi.client import IssuerResponse
from facturacion.services.secret_codec import SecretCodec
from facturacion.services.storage import CsdStorage

TEST_KEY_V1 = b"1" * 32
TEST_KEY_V2 = b"2" * 32

CERT_BYTES = b"-----CERT-----"
KEY_BYTES = b"-----KEY-----"


def make_codec(active_version: str = "1") -> SecretCodec:
    return SecretCodec({"1": TEST_KEY_V1, "2": TEST_KEY_V2}, active_version)


def key_ring_setting(*versions: str) -> str:
    """Valor de FISCAL_SECRET_KEYS para override_settings."""
    keys = {"1": TEST_KEY_V1, "2": TEST_KEY_V2}
    return ",".join(f"{v}:{base64.b64encode(keys[v]).decode('ascii')}" for v in versions)


def make_csd_storage(with_files: bool = True) -> CsdStorage:
    storage = InMemoryStorage()
    if with_files:
        storage.save("csd/clinic.cer", ContentFile(CERT_BYTES))
        storage.save("csd/clinic.key", ContentFile(KEY_BYTES))
    return CsdStorage(storage)


def ok(data: Dict[str, Any], status_code: int = 200) -> IssuerResponse:
    return IssuerResponse(ok=True, status_code=status_code, data=data)


def fail(message: str, status_code: int = 400) -> IssuerResponse:
    return IssuerResponse(ok=False, status_code=status_code, message=message)


def accepted_unparsed(status_code: int = 201) -> IssuerResponse:
    """2xx del PAC cuyo cuerpo no se pudo leer."""
    return IssuerResponse(
        ok=False,
        status_code=status_code,
        message="La respuesta de FiscalAPI no es JSON válido.",
        accepted=True,
    )


class FakeFiscalAPI:
    """
    Sustituto de FiscalAPIClient. Se usa como `client_factory`: cada llamada
    registra (ambiente, api_key) y devuelve la misma instancia.

    Las respuestas se encolan por operación; sin respuesta encolada se
    devuelve un éxito genérico.
    """

    def __init__(self):
        self.queued: Dict[str, Deque[IssuerResponse]] = defaultdict(deque)
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.factory_calls: List[Tuple[str, Optional[str]]] = []
        self._counter = 0

    def __call__(self, environment: str, api_key: Optional[str] = None) -> "FakeFiscalAPI":
        self.factory_calls.append((environment, api_key))
        return self

    def queue(self, operation: str, *responses: IssuerResponse) -> None:
        self.queued[operation].extend(responses)

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def _next(self, operation: str, default: IssuerResponse) -> IssuerResponse:
        if self.queued[operation]:
            return self.queued[operation].popleft()
        return default

    def create_person(self, payload):
        self._counter += 1
        self.calls.append(("create_person", {"payload": payload}))
        return self._next("create_person", ok({"id": f"person-{self._counter}"}))

    def create_api_key(self, person_id, description):
        self._counter += 1
        self.calls.append(
            ("create_api_key", {"person_id": person_id, "description": description})
        )
        return self._next("create_api_key", ok({"apiKeyValue": f"sk_test_{self._counter}"}))

    def create_income_invoice(self, payload, idempotency_key=None):
        self._counter += 1
        self.calls.append(
            (
                "create_income_invoice",
                {"payload": payload, "idempotency_key": idempotency_key},
            )
        )
        return self._next(
            "create_income_invoice",
            ok(
                {
                    "uuid": f"uuid-{self._counter}",
                    "status": {"description": "Timbrada"},
                    "pdfUrl": "https://files.example.com/f.pdf",
                    "xmlUrl": "https://files.example.com/f.xml",
                }
            ),
        )


def create_user(username: str = "cajero", **extra):
    User = get_user_model()
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="pass1234",
        **extra,
    )


def create_clinic(**overrides) -> Clinic:
    data = {
        "name": "CLINICA NUTRICION SA DE CV",
        "rfc": "CNU010101AB1",
        "fiscal_regime": "601",
        "address": "Av. Vallarta 100, Guadalajara, Jal., 45010",
        "zip_code": "",
    }
    data.update(overrides)
    return Clinic.objects.create(**data)


def create_credential(clinic: Clinic, codec: SecretCodec, **overrides) -> FiscalCredential:
    data = {
        "clinic": clinic,
        "certificate_path": "csd/clinic.cer",
        "private_key_path": "csd/clinic.key",
        "private_key_password": codec.encode("12345678a"),
        "fiscal_person_id": "person-issuer",
        "fiscal_api_key": codec.encode("sk_clinic"),
        "environment": FiscalCredential.ENV_SANDBOX,
    }
    data.update(overrides)
    return FiscalCredential.objects.create(**data)


def create_payment(clinic: Clinic, **overrides) -> Payment:
    person = overrides.pop("person", None) or Person.objects.create(
        clinic=clinic,
        full_name="JUAN PEREZ LOPEZ",
    )
    service = overrides.pop("service", None)
    if service is None and overrides.pop("with_service", True):
        service = Service.objects.create(clinic=clinic, name="Consulta de seguimiento")
    data = {
        "clinic": clinic,
        "person": person,
        "service": service,
        "amount": Decimal("850.00"),
        "payment_method": Payment.Method.TRANSFER,
    }
    data.update(overrides)
    return Payment.objects.create(**data)
