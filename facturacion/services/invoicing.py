# facturacion/services/invoicing.py
# -*- coding: utf-8 -*-
"""
Timbrado de la factura (CFDI 4.0 de ingreso) de un pago vía FiscalAPI.

Flujo de issue_invoice:

1. Lectura única de pago + persona + servicio + clínica + credenciales.
2. Validación campo por campo de la identidad fiscal del emisor.
3. Códigos postales de expedición y del receptor.
4. (Opcional) Sincronización del perfil fiscal del receptor.
5. Descarga de .cer/.key y descifrado de contraseña y API key.
6. Construcción del payload.
7. Envío al ambiente de la clínica (pruebas / producción).
8. Error del PAC: se registra la factura en estado error (best effort) y se lanza IssuerError.
9. Éxito: upsert de la factura. Si esa escritura falla se registra como
   inconsistencia CRÍTICA pero la respuesta sigue siendo exitosa: el CFDI ya existe.
   Un 2xx sin UUID legible también es CRÍTICO: el pago queda "por conciliar"
   y no admite nuevos intentos.

El paso 5-9 corre bajo un lock consultivo por pago. La llamada al PAC queda
fuera de toda transacción local.
"""
from __future__ import annotations

import functools
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from django.db import DatabaseError, transaction
from django.utils import timezone

from clinicas.models import Clinic, Payment, Person, Service
from facturacion.dto import InvoiceResult, RecipientTaxProfile
from facturacion.exceptions import (
    AlreadyIssuedError,
    IssuanceUnconfirmedError,
    IssuerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from facturacion.models import FiscalCredential, Invoice
from facturacion.services.fiscalapi.client import FiscalAPIClient, get_fiscalapi_client
from facturacion.services.locks import PaymentIssuanceLock
from facturacion.services.secret_codec import SecretCodec, get_secret_codec
from facturacion.services.storage import CsdStorage
from facturacion.utils import (
    generate_strong_password,
    issuance_idempotency_key,
    issuer_timestamp,
    payment_form_code,
    resolve_zip_code,
)

logger = logging.getLogger("facturacion")

ClientFactory = Callable[..., FiscalAPIClient]

CFDI_VERSION = "4.0"
INVOICE_SERIES = "F"
CURRENCY = "MXN"
INVOICE_TYPE_INCOME = "I"
PAYMENT_METHOD_SINGLE = "PUE"  # Pago en una sola exhibición
EXPORT_NOT_APPLICABLE = "01"
PAYMENT_CONDITIONS = "Contado"
DEFAULT_ITEM_DESCRIPTION = "Consulta Nutricional"
PRICE_QUANTUM = Decimal("0.000001")

FILE_TYPE_CERTIFICATE = 0
FILE_TYPE_PRIVATE_KEY = 1

# Receptor genérico para la factura de prueba
GENERIC_RECIPIENT_TIN = "XAXX010101000"
GENERIC_RECIPIENT_NAME = "PUBLICO EN GENERAL"
GENERIC_RECIPIENT_REGIME = "616"  # Sin obligaciones fiscales
GENERIC_RECIPIENT_ZIP = "01000"
TEST_EXPEDITION_ZIP = "45010"


def _issuer_status_label(data: Dict[str, Any]) -> str:
    status = data.get("status")
    if isinstance(status, dict):
        status = status.get("description")
    return status or Invoice.STATUS_ISSUED


class InvoiceService:
    def __init__(
        self,
        codec: Optional[SecretCodec] = None,
        client_factory: Optional[ClientFactory] = None,
        storage: Optional[CsdStorage] = None,
        lock: Optional[PaymentIssuanceLock] = None,
    ):
        self._codec = codec
        self.client_factory = client_factory or get_fiscalapi_client
        self.storage = storage or CsdStorage()
        self.lock = lock or PaymentIssuanceLock()

    @property
    def codec(self) -> SecretCodec:
        if self._codec is None:
            self._codec = get_secret_codec()
        return self._codec

    # ============================================================
    # Lectura y validaciones
    # ============================================================

    @staticmethod
    def load_context(payment_id: int) -> Payment:
        """
        Pago con persona, servicio, clínica y credenciales en una sola consulta.
        """
        try:
            payment = Payment.objects.select_related(
                "person",
                "service",
                "clinic",
                "clinic__fiscal_credential",
            ).get(pk=payment_id)
        except (Payment.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFoundError(f"Pago no encontrado: {payment_id}.") from exc

        if payment.person is None:
            raise NotFoundError("El pago no tiene un paciente asociado.")
        if getattr(payment.clinic, "fiscal_credential", None) is None:
            raise NotFoundError(
                "La clínica no tiene credenciales fiscales registradas. "
                "Guárdalas antes de facturar."
            )
        return payment

    @staticmethod
    def validate_issuer_identity(clinic: Clinic, credential: FiscalCredential) -> None:
        """ValidationError con la primera categoría faltante; no hay identidades parciales."""
        if not clinic.rfc:
            raise ValidationError("Los datos fiscales del emisor (clínica) están incompletos: falta el RFC.")
        if not clinic.name:
            raise ValidationError("Los datos fiscales del emisor (clínica) están incompletos: falta la razón social.")
        if not clinic.fiscal_regime:
            raise ValidationError("Los datos fiscales del emisor (clínica) están incompletos: falta el régimen fiscal.")
        if not credential.certificate_path:
            raise ValidationError("El certificado CSD de la clínica no está configurado.")
        if not credential.private_key_path:
            raise ValidationError("La clave privada CSD de la clínica no está configurada.")
        if not credential.private_key_password:
            raise ValidationError("La contraseña de la clave privada CSD no está configurada.")
        if not credential.fiscal_api_key:
            raise ValidationError(
                "La API key para facturación de esta clínica no está configurada. "
                "Por favor, guarda de nuevo las credenciales fiscales para generarla."
            )

    @staticmethod
    def validate_recipient_profile(profile: RecipientTaxProfile) -> None:
        missing = [
            label
            for label, value in (
                ("RFC", profile.rfc),
                ("uso de CFDI", profile.cfdi_use),
                ("domicilio fiscal", profile.fiscal_address),
                ("régimen fiscal", profile.fiscal_regime),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                "Faltan datos fiscales del receptor: " + ", ".join(missing) + "."
            )

    # ============================================================
    # Comando explícito: perfil fiscal del receptor
    # ============================================================

    @staticmethod
    def sync_recipient_profile(person: Person, profile: RecipientTaxProfile) -> bool:
        """
        Guarda en la persona el perfil fiscal recibido si difiere del actual.
        Devuelve True si hubo escritura.
        """
        updates = profile.person_updates(person)
        if not updates:
            return False

        with transaction.atomic():
            for field, value in updates.items():
                setattr(person, field, value)
            person.save(update_fields=[*updates.keys(), "updated_at"])

        logger.info(
            "Perfil fiscal de persona %s actualizado (campos=%s)",
            person.pk,
            sorted(updates),
        )
        return True

    # ============================================================
    # Payload
    # ============================================================

    @staticmethod
    def build_invoice_payload(
        *,
        payment: Payment,
        clinic: Clinic,
        person: Person,
        service: Optional[Service],
        profile: RecipientTaxProfile,
        expedition_zip_code: str,
        recipient_zip_code: str,
        certificate_b64: str,
        private_key_b64: str,
        private_key_password: str,
    ) -> Dict[str, Any]:
        unit_price = Decimal(payment.amount).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)

        item: Dict[str, Any] = {
            "itemCode": (service.sat_product_code if service else None) or "85101702",
            "quantity": 1,
            "unitOfMeasurementCode": (service.sat_unit_code if service else None) or "E48",
            "description": (service.name if service else None) or DEFAULT_ITEM_DESCRIPTION,
            "unitPrice": float(unit_price),
            # Sin arreglo itemTaxes: el PAC lo interpreta como servicio exento.
            "taxObjectCode": (service.sat_tax_object_code if service else None) or "02",
        }

        return {
            "versionCode": CFDI_VERSION,
            "series": INVOICE_SERIES,
            "date": issuer_timestamp(),
            "paymentFormCode": payment_form_code(payment.payment_method),
            "paymentConditions": PAYMENT_CONDITIONS,
            "currencyCode": CURRENCY,
            "typeCode": INVOICE_TYPE_INCOME,
            "expeditionZipCode": expedition_zip_code,
            "paymentMethodCode": PAYMENT_METHOD_SINGLE,
            "exportCode": EXPORT_NOT_APPLICABLE,
            "issuer": {
                "tin": clinic.rfc,
                "legalName": clinic.name,
                "taxRegimeCode": clinic.fiscal_regime,
                "taxCredentials": [
                    {
                        "base64File": certificate_b64,
                        "fileType": FILE_TYPE_CERTIFICATE,
                        "password": private_key_password,
                    },
                    {
                        "base64File": private_key_b64,
                        "fileType": FILE_TYPE_PRIVATE_KEY,
                        "password": private_key_password,
                    },
                ],
            },
            "recipient": {
                "tin": profile.rfc,
                "legalName": person.full_name,
                "zipCode": recipient_zip_code,
                "taxRegimeCode": profile.fiscal_regime,
                "cfdiUseCode": profile.cfdi_use,
            },
            "items": [item],
        }

    # ============================================================
    # Persistencia de resultado (upsert por pago)
    # ============================================================

    @staticmethod
    def _upsert_invoice(payment: Payment, defaults: Dict[str, Any]) -> Invoice:
        try:
            with transaction.atomic():
                invoice, _ = Invoice.objects.update_or_create(
                    payment=payment,
                    defaults={"clinic_id": payment.clinic_id, **defaults},
                )
        except DatabaseError as exc:
            raise PersistenceError(str(exc)) from exc
        return invoice

    def _record_failure(
        self,
        payment: Payment,
        credential: FiscalCredential,
        message: str,
        issuer_status: int,
    ) -> None:
        try:
            self._upsert_invoice(
                payment,
                {
                    "status": Invoice.STATUS_ERROR,
                    "error_message": f"FiscalAPI Error ({issuer_status}): {message}",
                    "idempotency_key": issuance_idempotency_key(payment.pk),
                    "environment": credential.environment,
                },
            )
        except PersistenceError as exc:
            logger.error("No se pudo registrar el error de FiscalAPI del pago %s: %s", payment.pk, exc)

    def _record_success(
        self,
        payment: Payment,
        credential: FiscalCredential,
        result: InvoiceResult,
    ) -> None:
        try:
            self._upsert_invoice(
                payment,
                {
                    "fiscal_uuid": result.uuid,
                    "status": result.status,
                    "pdf_url": result.pdf_url or "",
                    "xml_url": result.xml_url or "",
                    "error_message": "",
                    "idempotency_key": issuance_idempotency_key(payment.pk),
                    "environment": credential.environment,
                },
            )
        except PersistenceError as exc:
            logger.critical(
                "CRÍTICO: No se pudo guardar la factura generada %s para el pago %s. Error: %s",
                result.uuid,
                payment.pk,
                exc,
            )

    def _record_unconfirmed(
        self,
        payment: Payment,
        credential: FiscalCredential,
        issuer_status: int,
        detail: str,
    ) -> None:
        logger.critical(
            "CRÍTICO: FiscalAPI respondió %s al timbrar el pago %s pero sin UUID legible (%s). "
            "El CFDI puede existir en el PAC; el pago queda bloqueado hasta conciliarlo.",
            issuer_status,
            payment.pk,
            detail,
        )
        try:
            self._upsert_invoice(
                payment,
                {
                    "status": Invoice.STATUS_UNCONFIRMED,
                    "error_message": f"FiscalAPI ({issuer_status}) sin UUID: {detail}",
                    "idempotency_key": issuance_idempotency_key(payment.pk),
                    "environment": credential.environment,
                },
            )
        except PersistenceError as exc:
            logger.critical(
                "CRÍTICO: No se pudo marcar el pago %s como pendiente de conciliación. Error: %s",
                payment.pk,
                exc,
            )

    # ============================================================
    # Emitir factura
    # ============================================================

    @staticmethod
    def _ensure_not_issued(payment: Payment) -> None:
        existing = Invoice.objects.filter(payment=payment).first()
        if existing is None or not existing.blocks_reissue:
            return
        if existing.requires_reconciliation:
            raise AlreadyIssuedError(
                "El pago tiene un timbrado sin confirmar en FiscalAPI. "
                "Concílialo antes de volver a facturar."
            )
        raise AlreadyIssuedError(
            f"El pago ya tiene una factura timbrada (UUID {existing.fiscal_uuid})."
        )

    def check_issuable(self, payment: Payment, profile: RecipientTaxProfile) -> Tuple[str, str]:
        """
        Validaciones previas al timbrado, sin escrituras ni llamadas externas.
        Devuelve (CP de expedición, CP del receptor).
        """
        profile = profile.normalized()
        self.validate_recipient_profile(profile)
        self._ensure_not_issued(payment)

        clinic = payment.clinic
        self.validate_issuer_identity(clinic, clinic.fiscal_credential)

        expedition_zip_code = resolve_zip_code(clinic.zip_code, clinic.address)
        if not expedition_zip_code:
            raise ValidationError(
                "No se pudo extraer un código postal válido de la dirección de la clínica."
            )
        recipient_zip_code = resolve_zip_code(profile.zip_code, profile.fiscal_address)
        if not recipient_zip_code:
            raise ValidationError(
                "No se pudo extraer un código postal válido de la dirección fiscal del receptor."
            )
        return expedition_zip_code, recipient_zip_code

    def issue_invoice(
        self,
        payment_id: int,
        profile: RecipientTaxProfile,
        *,
        sync_profile: bool = True,
    ) -> InvoiceResult:
        profile = profile.normalized()
        self.validate_recipient_profile(profile)

        payment = self.load_context(payment_id)
        clinic = payment.clinic
        credential = clinic.fiscal_credential
        person = payment.person

        logger.info(
            "Iniciando facturación de pago id=%s clínica=%s ambiente=%s",
            payment.pk,
            clinic.pk,
            credential.environment,
        )

        expedition_zip_code, recipient_zip_code = self.check_issuable(payment, profile)

        if sync_profile:
            self.sync_recipient_profile(person, profile)

        with self.lock.hold(payment.pk):
            # Otro intento pudo timbrar mientras esperábamos.
            self._ensure_not_issued(payment)

            certificate_b64 = self.storage.read_base64(credential.certificate_path, "certificado")
            private_key_b64 = self.storage.read_base64(credential.private_key_path, "clave privada")
            private_key_password = self.codec.decode(credential.private_key_password)
            clinic_api_key = self.codec.decode(credential.fiscal_api_key)

            payload = self.build_invoice_payload(
                payment=payment,
                clinic=clinic,
                person=person,
                service=payment.service,
                profile=profile,
                expedition_zip_code=expedition_zip_code,
                recipient_zip_code=recipient_zip_code,
                certificate_b64=certificate_b64,
                private_key_b64=private_key_b64,
                private_key_password=private_key_password,
            )

            client = self.client_factory(credential.environment, clinic_api_key)
            resp = client.create_income_invoice(
                payload,
                idempotency_key=issuance_idempotency_key(payment.pk),
            )

            # 2xx sin cuerpo legible o sin UUID: el PAC procesó la solicitud.
            if resp.accepted or (resp.ok and not resp.data.get("uuid")):
                detail = resp.message or "la respuesta no incluye UUID"
                self._record_unconfirmed(payment, credential, resp.status_code, detail)
                raise IssuanceUnconfirmedError(
                    "FiscalAPI procesó la factura pero no devolvió su UUID. "
                    "No vuelvas a intentarlo: el pago quedó pendiente de conciliación."
                )

            if not resp.ok:
                self._record_failure(payment, credential, resp.message or "", resp.status_code)
                raise IssuerError(
                    f"Error de FiscalAPI: {resp.message}",
                    issuer_status=resp.status_code,
                )

            result = InvoiceResult(
                uuid=resp.data.get("uuid"),
                status=_issuer_status_label(resp.data),
                pdf_url=resp.data.get("pdfUrl"),
                xml_url=resp.data.get("xmlUrl"),
            )
            self._record_success(payment, credential, result)

        logger.info("Pago %s timbrado con UUID %s", payment.pk, result.uuid)
        return result


    # ============================================================
    # Factura de prueba (siempre ambiente de pruebas)
    # ============================================================

    def issue_test_invoice(self, clinic_id: int) -> InvoiceResult:
        """
        Timbra una factura de prueba contra el ambiente de pruebas para
        diagnosticar la configuración de la clínica. No guarda nada localmente.
        """
        try:
            credential = FiscalCredential.objects.select_related("clinic").get(clinic_id=clinic_id)
        except FiscalCredential.DoesNotExist as exc:
            raise NotFoundError("Credenciales fiscales no encontradas para la clínica.") from exc

        if not credential.fiscal_person_id or not credential.fiscal_api_key:
            raise ValidationError(
                "La configuración de la entidad fiscal o la API key de la clínica están incompletas."
            )

        clinic_api_key = self.codec.decode(credential.fiscal_api_key)
        environment = FiscalCredential.ENV_SANDBOX

        # 1) Receptor genérico desechable
        stamp = int(timezone.now().timestamp() * 1000)
        master_client = self.client_factory(environment)
        person_resp = master_client.create_person(
            {
                "tin": GENERIC_RECIPIENT_TIN,
                "legalName": GENERIC_RECIPIENT_NAME,
                "email": f"test-receiver-{stamp}@zegna.app",
                "password": generate_strong_password(),
                "satTaxRegimeId": GENERIC_RECIPIENT_REGIME,
                "zipCode": GENERIC_RECIPIENT_ZIP,
            }
        )
        if not person_resp.ok:
            raise IssuerError(
                f"Error de FiscalAPI al crear receptor de prueba: {person_resp.message}",
                issuer_status=person_resp.status_code,
            )
        receiver_id = person_resp.data.get("id")
        if not receiver_id:
            raise IssuerError("FiscalAPI no devolvió el id del receptor de prueba.")

        # 2) Factura mínima referenciando emisor y receptor por id
        payload = {
            "series": "TEST",
            "date": issuer_timestamp(),
            "paymentFormCode": "01",
            "paymentMethodCode": PAYMENT_METHOD_SINGLE,
            "currencyCode": CURRENCY,
            "expeditionZipCode": TEST_EXPEDITION_ZIP,
            "issuer": {"id": credential.fiscal_person_id},
            "recipient": {"id": receiver_id, "cfdiUseCode": "S01"},
            "items": [
                {
                    "itemCode": "01010101",
                    "quantity": 1,
                    "description": "Producto de Prueba",
                    "unitPrice": 100.00,
                    "taxObjectCode": "01",
                }
            ],
        }

        clinic_client = self.client_factory(environment, clinic_api_key)
        resp = clinic_client.create_income_invoice(payload)
        if not resp.ok:
            raise IssuerError(
                f"Error de FiscalAPI al generar factura: {resp.message}",
                issuer_status=resp.status_code,
            )

        logger.info(
            "Factura de prueba timbrada para clínica %s (UUID %s)",
            credential.clinic_id,
            resp.data.get("uuid"),
        )
        return InvoiceResult(
            uuid=resp.data.get("uuid"),
            status=_issuer_status_label(resp.data),
            pdf_url=resp.data.get("pdfUrl"),
            xml_url=resp.data.get("xmlUrl"),
        )


@functools.lru_cache(maxsize=1)
def get_invoice_service() -> InvoiceService:
    """Instancia única por proceso; las vistas la reciben desde aquí."""
    return InvoiceService()
