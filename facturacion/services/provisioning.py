# facturacion/services/provisioning.py
# -*- coding: utf-8 -*-
"""
Aprovisionamiento de la identidad fiscal de una clínica en FiscalAPI.

Máquina de estados de FiscalCredential:

    unprovisioned -> person-created -> key-issued

Cada guardado de credenciales vuelve a `key-issued` emitiendo una API key
nueva en FiscalAPI; la anterior no se revoca, simplemente deja de usarse.
Dos guardados concurrentes pueden crear dos keys: gana la última escritura.
"""
from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Dict, Optional

from django.db import transaction

from clinicas.models import Clinic
from facturacion.exceptions import IssuerError, NotFoundError, ValidationError
from facturacion.models import FiscalCredential
from facturacion.services.fiscalapi.client import FiscalAPIClient, get_fiscalapi_client
from facturacion.services.secret_codec import SecretCodec, get_secret_codec
from facturacion.utils import generate_strong_password, synthetic_login

logger = logging.getLogger("facturacion")

ClientFactory = Callable[..., FiscalAPIClient]


class CredentialProvisioningService:
    def __init__(
        self,
        codec: Optional[SecretCodec] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._codec = codec
        self.client_factory = client_factory or get_fiscalapi_client

    @property
    def codec(self) -> SecretCodec:
        if self._codec is None:
            self._codec = get_secret_codec()
        return self._codec

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _get_clinic(clinic_id: int) -> Clinic:
        try:
            return Clinic.objects.select_related("fiscal_credential").get(pk=clinic_id)
        except Clinic.DoesNotExist as exc:
            raise NotFoundError(f"No existe la clínica {clinic_id}.") from exc

    @staticmethod
    def _check_clinic_identity(clinic: Clinic) -> None:
        if not (clinic.rfc or "").strip() or not (clinic.name or "").strip():
            raise ValidationError(
                "La clínica debe tener un Nombre y un RFC configurados antes de "
                "guardar las credenciales fiscales."
            )

    @staticmethod
    def _upsert(clinic: Clinic, defaults: Dict[str, Any]) -> FiscalCredential:
        credential, created = FiscalCredential.objects.update_or_create(
            clinic=clinic,
            defaults=defaults,
        )
        logger.info(
            "FiscalCredential de clínica %s %s (campos=%s)",
            clinic.pk,
            "creada" if created else "actualizada",
            sorted(defaults),
        )
        return credential

    # -------------------------
    # Operaciones
    # -------------------------

    def provision_fiscal_identity(
        self,
        clinic_id: int,
        environment: str = FiscalCredential.ENV_SANDBOX,
    ) -> str:
        """
        Garantiza que la clínica tenga una persona en FiscalAPI y devuelve su id.

        Si ya existe `fiscal_person_id` no se llama al PAC. Si no, se crea la
        persona con un login sintético derivado del RFC y una contraseña
        aleatoria, y el id se guarda de inmediato.
        """
        clinic = self._get_clinic(clinic_id)
        self._check_clinic_identity(clinic)

        credential = getattr(clinic, "fiscal_credential", None)
        if credential is not None and credential.fiscal_person_id:
            logger.info(
                "Clínica %s ya tiene persona en FiscalAPI (%s); se omite la creación.",
                clinic.pk,
                credential.fiscal_person_id,
            )
            return credential.fiscal_person_id

        client = self.client_factory(environment)
        resp = client.create_person(
            {
                "tin": clinic.rfc.strip().upper(),
                "legalName": clinic.name.strip(),
                "email": synthetic_login(clinic.rfc),
                "password": generate_strong_password(),
            }
        )
        if not resp.ok:
            raise IssuerError(
                f"Error de FiscalAPI al crear la entidad fiscal: {resp.message}",
                issuer_status=resp.status_code,
            )

        fiscal_person_id = resp.data.get("id")
        if not fiscal_person_id:
            raise IssuerError("No se pudo obtener o crear el ID de la entidad fiscal en FiscalAPI.")
        fiscal_person_id = str(fiscal_person_id)

        with transaction.atomic():
            self._upsert(
                clinic,
                {"fiscal_person_id": fiscal_person_id, "environment": environment},
            )

        logger.info("Persona FiscalAPI %s creada para clínica %s", fiscal_person_id, clinic.pk)
        return fiscal_person_id

    def issue_api_key(
        self,
        clinic: Clinic,
        fiscal_person_id: str,
        environment: str = FiscalCredential.ENV_SANDBOX,
        *,
        updates: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Crea SIEMPRE una API key nueva para la persona y sobrescribe la guardada
        (cifrada). `updates` se guarda en la misma transacción local.

        La key en claro se devuelve solo para uso inmediato dentro del flujo de
        aprovisionamiento; nunca debe viajar a la respuesta HTTP.
        """
        client = self.client_factory(environment)
        resp = client.create_api_key(fiscal_person_id, f"API Key para Zegna - {clinic.name}")
        if not resp.ok:
            raise IssuerError(
                f"Error de FiscalAPI al crear la API key: {resp.message}",
                issuer_status=resp.status_code,
            )

        api_key = resp.data.get("apiKeyValue")
        if not api_key:
            raise IssuerError("FiscalAPI no devolvió el valor de la API key.")

        defaults: Dict[str, Any] = dict(updates or {})
        defaults["fiscal_person_id"] = fiscal_person_id
        defaults["fiscal_api_key"] = self.codec.encode(api_key)

        with transaction.atomic():
            self._upsert(clinic, defaults)

        logger.info("API key nueva emitida para clínica %s (persona %s)", clinic.pk, fiscal_person_id)
        return api_key

    def save_fiscal_credentials(
        self,
        clinic_id: int,
        *,
        certificate_path: str,
        private_key_path: str,
        private_key_password: Optional[str] = None,
        environment: str = FiscalCredential.ENV_SANDBOX,
    ) -> FiscalCredential:
        """
        Flujo completo de "guardar credenciales": persona (si falta) -> API key
        nueva -> rutas CSD, ambiente y contraseña cifrada.

        Si no se envía contraseña se conserva la guardada.
        """
        fiscal_person_id = self.provision_fiscal_identity(clinic_id, environment)
        clinic = self._get_clinic(clinic_id)

        updates: Dict[str, Any] = {
            "environment": environment,
            "certificate_path": certificate_path or "",
            "private_key_path": private_key_path or "",
        }
        if private_key_password:
            updates["private_key_password"] = self.codec.encode(private_key_password)

        self.issue_api_key(clinic, fiscal_person_id, environment, updates=updates)
        return FiscalCredential.objects.get(clinic=clinic)


@functools.lru_cache(maxsize=1)
def get_provisioning_service() -> CredentialProvisioningService:
    return CredentialProvisioningService()
