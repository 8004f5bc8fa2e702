# facturacion/tests/test_views.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from unittest.mock import patch

from django.contrib.auth.models import Group
from django.core.cache import cache
from django.test import TestCase

from rest_framework.test import APIRequestFactory, force_authenticate

from facturacion.exceptions import AlreadyIssuedError
from facturacion.models import FiscalCredential, Invoice
from facturacion.services.invoicing import InvoiceService
from facturacion.services.provisioning import CredentialProvisioningService
from facturacion.tests.fakes import (
    FakeFiscalAPI,
    accepted_unparsed,
    create_clinic,
    create_credential,
    create_payment,
    create_user,
    fail,
    make_codec,
    make_csd_storage,
)
from facturacion.views import (
    IssueInvoiceView,
    SandboxInvoiceView,
    SaveFiscalCredentialsView,
    SyncRecipientProfileView,
)


class FacturacionViewTestMixin:
    def setUp(self) -> None:
        cache.clear()
        self.factory = APIRequestFactory()
        self.codec = make_codec()
        self.fake = FakeFiscalAPI()
        self.invoice_service = InvoiceService(
            codec=self.codec,
            client_factory=self.fake,
            storage=make_csd_storage(),
        )
        self.provisioning_service = CredentialProvisioningService(
            codec=self.codec,
            client_factory=self.fake,
        )

        self.clinic = create_clinic()
        self.credential = create_credential(self.clinic, self.codec)
        self.payment = create_payment(self.clinic)

        self.admin = create_user("admin", is_superuser=True, is_staff=True)

        patcher_inv = patch("facturacion.views.get_invoice_service", return_value=self.invoice_service)
        patcher_prov = patch(
            "facturacion.views.get_provisioning_service",
            return_value=self.provisioning_service,
        )
        patcher_inv.start()
        patcher_prov.start()
        self.addCleanup(patcher_inv.stop)
        self.addCleanup(patcher_prov.stop)

    def _post(self, view_class, data, user=None):
        request = self.factory.post("/api/facturacion/", data, format="json")
        force_authenticate(request, user=user or self.admin)
        return view_class.as_view()(request)

    def _invoice_body(self, **overrides):
        body = {
            "payment_id": self.payment.id,
            "rfc": "PELJ800101AB1",
            "cfdi_use": "D01",
            "fiscal_address": "Calle Falsa 123, Col. Centro, CDMX, 06000",
            "fiscal_regime": "605",
        }
        body.update(overrides)
        return body


class MethodNotAllowedTests(FacturacionViewTestMixin, TestCase):
    def test_solo_post(self):
        views = [
            IssueInvoiceView,
            SaveFiscalCredentialsView,
            SandboxInvoiceView,
            SyncRecipientProfileView,
        ]
        for view_class in views:
            for method in ("get", "put", "patch", "delete"):
                with self.subTest(view=view_class.__name__, method=method):
                    request = getattr(self.factory, method)("/api/facturacion/")
                    force_authenticate(request, user=self.admin)
                    response = view_class.as_view()(request)
                    self.assertEqual(response.status_code, 405)

    def test_url_registrada(self):
        self.client.force_login(self.admin)
        response = self.client.get("/api/facturacion/facturas/emitir/")
        self.assertEqual(response.status_code, 405)


class IssueInvoiceViewTests(FacturacionViewTestMixin, TestCase):
    def test_emite_factura(self):
        response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 200, response.data)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["message"], "Factura generada exitosamente.")
        self.assertTrue(response.data["uuid"])
        self.assertEqual(response.data["pdf"], "https://files.example.com/f.pdf")
        self.assertEqual(response.data["xml"], "https://files.example.com/f.xml")

        invoice = Invoice.objects.get(payment=self.payment)
        self.assertEqual(invoice.fiscal_uuid, response.data["uuid"])
        person = self.payment.person
        person.refresh_from_db()
        self.assertEqual(person.rfc, "PELJ800101AB1")

    def test_segunda_emision_es_conflicto(self):
        self._post(IssueInvoiceView, self._invoice_body())
        response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.data["success"])
        self.assertEqual(len(self.fake.calls_to("create_income_invoice")), 1)

    def test_error_del_pac(self):
        self.fake.queue("create_income_invoice", fail("CSD revocado", status_code=400))

        response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data["success"], False)
        self.assertIn("CSD revocado", response.data["error"])


    def test_conflicto_no_sobrescribe_el_perfil(self):
        self._post(IssueInvoiceView, self._invoice_body())

        response = self._post(IssueInvoiceView, self._invoice_body(rfc="XEXX010101000"))

        self.assertEqual(response.status_code, 409)
        person = self.payment.person
        person.refresh_from_db()
        self.assertEqual(person.rfc, "PELJ800101AB1")

    def test_emisor_incompleto_no_sobrescribe_el_perfil(self):
        FiscalCredential.objects.filter(pk=self.credential.pk).update(fiscal_api_key="")

        response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 400)
        self.assertIn("API key", response.data["error"])
        person = self.payment.person
        person.refresh_from_db()
        self.assertEqual(person.rfc, "")
        self.assertEqual(self.fake.calls, [])

    def test_timbrado_sin_confirmar(self):
        self.fake.queue("create_income_invoice", accepted_unparsed())

        with self.assertLogs("facturacion", level="CRITICAL"):
            response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 502)
        self.assertFalse(response.data["success"])
        invoice = Invoice.objects.get(payment=self.payment)
        self.assertEqual(invoice.status, Invoice.STATUS_UNCONFIRMED)
    def test_cuerpo_invalido(self):
        body = self._invoice_body()
        del body["rfc"]
        response = self._post(IssueInvoiceView, body)

        self.assertEqual(response.status_code, 400)
        self.assertIn("rfc", response.data["errors"])
        self.assertEqual(self.fake.calls, [])

    def test_pago_inexistente(self):
        response = self._post(IssueInvoiceView, self._invoice_body(payment_id=999999))
        self.assertEqual(response.status_code, 404)

    def test_error_inesperado(self):
        with patch.object(InvoiceService, "issue_invoice", side_effect=RuntimeError("boom")):
            with self.assertLogs("facturacion", level="ERROR"):
                response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["error"], "Ocurrió un error inesperado en el servidor.")

    def test_conflicto_desde_el_servicio(self):
        with patch.object(
            InvoiceService,
            "issue_invoice",
            side_effect=AlreadyIssuedError("ya timbrada"),
        ):
            response = self._post(IssueInvoiceView, self._invoice_body())

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data, {"success": False, "error": "ya timbrada"})


class TenantIsolationTests(FacturacionViewTestMixin, TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.cajero = create_user("cajero")
        self.cajero.groups.add(Group.objects.create(name="FACTURACION"))

    def test_usuario_sin_permiso(self):
        user = create_user("visitante")
        self.clinic.members.add(user)

        response = self._post(IssueInvoiceView, self._invoice_body(), user=user)

        self.assertEqual(response.status_code, 403)

    def test_usuario_de_otra_clinica(self):
        create_clinic(rfc="OTR010101AB1").members.add(self.cajero)

        response = self._post(IssueInvoiceView, self._invoice_body(), user=self.cajero)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.fake.calls, [])

    def test_miembro_de_la_clinica(self):
        self.clinic.members.add(self.cajero)

        response = self._post(IssueInvoiceView, self._invoice_body(), user=self.cajero)

        self.assertEqual(response.status_code, 200, response.data)

    def test_cajero_no_administra_credenciales(self):
        self.clinic.members.add(self.cajero)
        response = self._post(
            SaveFiscalCredentialsView,
            {
                "clinic_id": self.clinic.id,
                "certificate_path": "csd/clinic.cer",
                "private_key_path": "csd/clinic.key",
                "environment": "sandbox",
            },
            user=self.cajero,
        )
        self.assertEqual(response.status_code, 403)


class SaveFiscalCredentialsViewTests(FacturacionViewTestMixin, TestCase):
    def _body(self, **overrides):
        body = {
            "clinic_id": self.clinic.id,
            "certificate_path": "csd/nuevo.cer",
            "private_key_path": "csd/nuevo.key",
            "private_key_password": "nueva-clave",
            "environment": "production",
        }
        body.update(overrides)
        return body

    def test_guarda_credenciales(self):
        response = self._post(SaveFiscalCredentialsView, self._body())

        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(
            response.data,
            {
                "success": True,
                "message": "Credenciales fiscales y API Key guardadas exitosamente.",
            },
        )
        credential = FiscalCredential.objects.get(clinic=self.clinic)
        self.assertEqual(credential.certificate_path, "csd/nuevo.cer")
        self.assertTrue(credential.is_production)
        self.assertEqual(self.codec.decode(credential.private_key_password), "nueva-clave")
        # Persona ya existente: solo se emite la key nueva
        self.assertEqual(self.fake.calls_to("create_person"), [])
        self.assertEqual(len(self.fake.calls_to("create_api_key")), 1)

    def test_ambiente_invalido(self):
        response = self._post(SaveFiscalCredentialsView, self._body(environment="staging"))
        self.assertEqual(response.status_code, 400)

    def test_clinica_sin_rfc(self):
        clinic = create_clinic(rfc="")
        response = self._post(SaveFiscalCredentialsView, self._body(clinic_id=clinic.id))

        self.assertEqual(response.status_code, 400)
        self.assertIn("RFC", response.data["error"])
        self.assertEqual(self.fake.calls, [])


class SandboxInvoiceViewTests(FacturacionViewTestMixin, TestCase):
    def test_factura_de_prueba(self):
        response = self._post(SandboxInvoiceView, {"clinic_id": self.clinic.id})

        self.assertEqual(response.status_code, 200, response.data)
        self.assertTrue(response.data["success"])
        self.assertTrue(response.data["uuid"])
        self.assertFalse(Invoice.objects.exists())


class SyncRecipientProfileViewTests(FacturacionViewTestMixin, TestCase):
    def test_actualiza_perfil(self):
        body = {
            "person_id": self.payment.person_id,
            "rfc": "pelj800101ab1",
            "cfdi_use": "g03",
            "fiscal_address": "Calle Falsa 123, Col. Centro, CDMX, 06000",
            "fiscal_regime": "605",
            "zip_code": "06000",
        }
        response = self._post(SyncRecipientProfileView, body)
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data, {"success": True, "updated": True})

        response = self._post(SyncRecipientProfileView, body)
        self.assertEqual(response.data, {"success": True, "updated": False})

        person = self.payment.person
        person.refresh_from_db()
        self.assertEqual(person.cfdi_use, "G03")
        self.assertEqual(person.fiscal_zip_code, "06000")

    def test_persona_inexistente(self):
        body = {
            "person_id": 999999,
            "rfc": "PELJ800101AB1",
            "cfdi_use": "G03",
            "fiscal_address": "Centro 06000",
            "fiscal_regime": "605",
        }
        response = self._post(SyncRecipientProfileView, body)
        self.assertEqual(response.status_code, 404)
