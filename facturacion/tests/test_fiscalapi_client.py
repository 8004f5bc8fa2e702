# facturacion/tests/test_fiscalapi_client.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import json
from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase, override_settings

from facturacion.exceptions import IssuerError
from facturacion.models import FiscalCredential
from facturacion.services.fiscalapi.client import (
    FiscalAPIClient,
    extract_error_message,
    get_fiscalapi_client,
)


def make_response(status_code: int, body) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp.encoding = "utf-8"
    if isinstance(body, (dict, list)):
        resp._content = json.dumps(body).encode("utf-8")
    else:
        resp._content = (body or "").encode("utf-8")
    return resp


class ExtractErrorMessageTests(SimpleTestCase):
    def test_details_tiene_prioridad(self):
        resp = make_response(400, {"details": "RFC inválido", "message": "Bad Request"})
        self.assertEqual(extract_error_message(resp), "RFC inválido")

    def test_message_si_no_hay_details(self):
        resp = make_response(422, {"message": "CSD vencido"})
        self.assertEqual(extract_error_message(resp), "CSD vencido")

    def test_json_completo_como_ultimo_recurso(self):
        body = {"errors": [{"field": "tin"}]}
        resp = make_response(400, body)
        self.assertEqual(json.loads(extract_error_message(resp)), body)

    def test_cuerpo_no_json_se_devuelve_tal_cual(self):
        resp = make_response(502, "<html>Bad Gateway</html>")
        self.assertEqual(extract_error_message(resp), "<html>Bad Gateway</html>")


@override_settings(
    FISCALAPI_TEST_URL="https://test.fiscalapi.example",
    FISCALAPI_LIVE_URL="https://live.fiscalapi.example",
    FISCALAPI_TENANT_KEY="tenant-123",
    FISCALAPI_MASTER_KEY="master-abc",
    FISCALAPI_TIMEZONE="America/Mexico_City",
    FISCALAPI_REQUEST_TIMEOUT=12,
)
class FiscalAPIClientTests(SimpleTestCase):
    def setUp(self) -> None:
        self.session = MagicMock(spec=requests.Session)
        self.session.headers = {}

    def _client(self, environment=FiscalCredential.ENV_SANDBOX, api_key="sk_clinic"):
        return FiscalAPIClient(environment, api_key, session=self.session)

    def test_url_y_headers_de_pruebas(self):
        self.session.post.return_value = make_response(200, {"data": {"id": "p-1"}})

        resp = self._client().create_person({"tin": "CNU010101AB1"})

        self.assertTrue(resp.ok)
        self.assertEqual(resp.data, {"id": "p-1"})
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://test.fiscalapi.example/api/v4/people")
        self.assertEqual(kwargs["timeout"], 12)
        self.assertEqual(kwargs["json"], {"tin": "CNU010101AB1"})
        headers = kwargs["headers"]
        self.assertEqual(headers["X-TENANT-KEY"], "tenant-123")
        self.assertEqual(headers["X-API-KEY"], "sk_clinic")
        self.assertEqual(headers["X-TIME-ZONE"], "America/Mexico_City")
        self.assertEqual(headers["Content-Type"], "application/json")
        self.assertNotIn("X-IDEMPOTENCY-KEY", headers)

    def test_produccion_usa_url_live(self):
        self.session.post.return_value = make_response(200, {"data": {"apiKeyValue": "k"}})

        self._client(FiscalCredential.ENV_PRODUCTION).create_api_key("p-1", "API Key para X")

        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://live.fiscalapi.example/api/v4/apikeys")
        self.assertEqual(kwargs["json"], {"personId": "p-1", "description": "API Key para X"})

    def test_factura_envia_llave_de_idempotencia(self):
        self.session.post.return_value = make_response(200, {"data": {"uuid": "u-1"}})

        resp = self._client().create_income_invoice({"series": "F"}, idempotency_key="idem-1")

        self.assertEqual(resp.data["uuid"], "u-1")
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["headers"]["X-IDEMPOTENCY-KEY"], "idem-1")

    def test_respuesta_sin_envoltura_data(self):
        self.session.post.return_value = make_response(201, {"uuid": "u-2"})
        resp = self._client().create_income_invoice({})
        self.assertEqual(resp.data, {"uuid": "u-2"})

    def test_error_del_pac_no_lanza(self):
        self.session.post.return_value = make_response(400, {"details": "Sello inválido"})

        resp = self._client().create_income_invoice({})

        self.assertFalse(resp.ok)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.message, "Sello inválido")

    def test_error_de_red_lanza_issuer_error_sin_reintentar(self):
        self.session.post.side_effect = requests.ConnectionError("boom")

        with self.assertRaises(IssuerError) as ctx:
            self._client().create_income_invoice({})

        self.assertEqual(ctx.exception.issuer_status, 0)
        self.assertEqual(self.session.post.call_count, 1)

    def test_cuerpo_exitoso_no_json(self):
        self.session.post.return_value = make_response(200, "OK")
        resp = self._client().create_person({})
        self.assertFalse(resp.ok)
        self.assertTrue(resp.accepted)
        self.assertEqual(resp.status_code, 200)

    def test_error_con_cuerpo_no_json_no_se_marca_aceptado(self):
        self.session.post.return_value = make_response(500, "Internal Server Error")
        resp = self._client().create_income_invoice({})
        self.assertFalse(resp.ok)
        self.assertFalse(resp.accepted)

    def test_factory_usa_llave_maestra(self):
        client = get_fiscalapi_client(FiscalCredential.ENV_SANDBOX)
        self.assertEqual(client._headers()["X-API-KEY"], "master-abc")
        self.assertEqual(client.base_url, "https://test.fiscalapi.example")

    def test_sesion_por_defecto_solo_reintenta_conexion(self):
        client = get_fiscalapi_client(FiscalCredential.ENV_SANDBOX, "sk")
        retry = client.session.get_adapter("https://x").max_retries
        self.assertEqual(retry.read, 0)
        self.assertEqual(retry.status, 0)
