# facturacion/views.py
# -*- coding: utf-8 -*-
"""
Endpoints DRF de facturación CFDI (todos POST; cualquier otro método → 405).

    POST /api/facturacion/facturas/emitir/   -> IssueInvoiceView
    POST /api/facturacion/credenciales/      -> SaveFiscalCredentialsView
    POST /api/facturacion/facturas/prueba/   -> SandboxInvoiceView
    POST /api/facturacion/perfil-fiscal/     -> SyncRecipientProfileView

Los servicios lanzan excepciones de facturacion.exceptions; aquí se traducen a
{"success": false, "error": "..."} con el status de cada excepción.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinicas.models import Payment, Person
from facturacion.exceptions import FacturacionError, NotFoundError
from facturacion.permissions import CanIssueInvoice, CanManageFiscalCredentials, user_in_clinic
from facturacion.serializers import (
    IssueInvoiceSerializer,
    SandboxInvoiceSerializer,
    SaveFiscalCredentialsSerializer,
    SyncRecipientProfileSerializer,
)
from facturacion.services.invoicing import InvoiceService, get_invoice_service
from facturacion.services.provisioning import (
    CredentialProvisioningService,
    get_provisioning_service,
)

logger = logging.getLogger("facturacion")

GENERIC_ERROR = "Ocurrió un error inesperado en el servidor."


class FacturacionAPIView(APIView):
    """
    Base de los endpoints:

    - Solo POST (OPTIONS para CORS).
    - Valida el cuerpo con `serializer_class`.
    - Verifica que el usuario pertenezca a la clínica afectada.
    - Convierte FacturacionError en respuesta JSON; lo inesperado es 500.
    """

    http_method_names = ["post", "options"]
    permission_classes = [IsAuthenticated]
    serializer_class: Any = None

    def invoice_service(self) -> InvoiceService:
        return get_invoice_service()

    def provisioning_service(self) -> CredentialProvisioningService:
        return get_provisioning_service()

    # ------------- helpers -------------

    def _bad_request(self, serializer) -> Response:
        return Response(
            {
                "success": False,
                "error": "Datos inválidos en la solicitud.",
                "errors": serializer.errors,
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    def _forbidden(self) -> Response:
        return Response(
            {"success": False, "error": "No tienes acceso a esta clínica."},
            status=status.HTTP_403_FORBIDDEN,
        )

    def _run(self, label: str, action: Callable[[], Dict[str, Any]]) -> Response:
        try:
            data = action()
        except FacturacionError as exc:
            logger.warning("[%s] %s: %s", label, type(exc).__name__, exc.message)
            return Response(exc.as_response_data(), status=exc.status_code)
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] Error inesperado: %s", label, exc)
            return Response(
                {"success": False, "error": GENERIC_ERROR},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response(data, status=status.HTTP_200_OK)

    def clinic_for(self, data: Dict[str, Any]) -> Optional[int]:
        return data.get("clinic_id")

    def post(self, request, *args, **kwargs):
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            return self._bad_request(serializer)

        clinic_id = self.clinic_for(serializer.validated_data)
        # Sin clínica resoluble dejamos que el servicio responda 404.
        if clinic_id is not None and not user_in_clinic(request.user, clinic_id):
            return self._forbidden()

        return self._run(type(self).__name__, lambda: self.perform(serializer))

    def perform(self, serializer) -> Dict[str, Any]:
        raise NotImplementedError


class IssueInvoiceView(FacturacionAPIView):
    permission_classes = [IsAuthenticated, CanIssueInvoice]
    serializer_class = IssueInvoiceSerializer

    def clinic_for(self, data):
        return (
            Payment.objects.filter(pk=data["payment_id"])
            .values_list("clinic_id", flat=True)
            .first()
        )

    def perform(self, serializer):
        service = self.invoice_service()
        payment_id = serializer.validated_data["payment_id"]
        profile = serializer.to_profile().normalized()

        # El perfil solo se guarda si el pago está en condiciones de timbrarse.
        payment = service.load_context(payment_id)
        service.check_issuable(payment, profile)
        service.sync_recipient_profile(payment.person, profile)
        result = service.issue_invoice(payment_id, profile, sync_profile=False)

        return {
            "success": True,
            "message": "Factura generada exitosamente.",
            "uuid": result.uuid,
            "pdf": result.pdf_url,
            "xml": result.xml_url,
        }


class SaveFiscalCredentialsView(FacturacionAPIView):
    permission_classes = [IsAuthenticated, CanManageFiscalCredentials]
    serializer_class = SaveFiscalCredentialsSerializer

    def perform(self, serializer):
        data = serializer.validated_data
        credential = self.provisioning_service().save_fiscal_credentials(
            data["clinic_id"],
            certificate_path=data["certificate_path"],
            private_key_path=data["private_key_path"],
            private_key_password=data.get("private_key_password") or None,
            environment=data["environment"],
        )
        logger.info(
            "Credenciales fiscales guardadas para clínica %s (estado=%s)",
            credential.clinic_id,
            credential.state,
        )
        return {
            "success": True,
            "message": "Credenciales fiscales y API Key guardadas exitosamente.",
        }


class SandboxInvoiceView(FacturacionAPIView):
    permission_classes = [IsAuthenticated, CanManageFiscalCredentials]
    serializer_class = SandboxInvoiceSerializer

    def perform(self, serializer):
        result = self.invoice_service().issue_test_invoice(serializer.validated_data["clinic_id"])
        return {
            "success": True,
            "message": "¡Factura de prueba generada exitosamente!",
            "uuid": result.uuid,
        }


class SyncRecipientProfileView(FacturacionAPIView):
    permission_classes = [IsAuthenticated, CanIssueInvoice]
    serializer_class = SyncRecipientProfileSerializer

    def clinic_for(self, data):
        return (
            Person.objects.filter(pk=data["person_id"])
            .values_list("clinic_id", flat=True)
            .first()
        )

    def perform(self, serializer):
        person_id = serializer.validated_data["person_id"]
        try:
            person = Person.objects.get(pk=person_id)
        except Person.DoesNotExist as exc:
            raise NotFoundError(f"Persona no encontrada: {person_id}.") from exc

        updated = self.invoice_service().sync_recipient_profile(
            person,
            serializer.to_profile().normalized(),
        )
        return {"success": True, "updated": updated}
