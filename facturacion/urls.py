# facturacion/urls.py
# -*- coding: utf-8 -*-
"""
Rutas del módulo de facturación CFDI. En core/urls.py:

    path("api/facturacion/", include("facturacion.urls"))
"""
from __future__ import annotations

from django.urls import path

from facturacion.views import (
    IssueInvoiceView,
    SaveFiscalCredentialsView,
    SyncRecipientProfileView,
    SandboxInvoiceView,
)

app_name = "facturacion"

urlpatterns = [
    path("facturas/emitir/", IssueInvoiceView.as_view(), name="issue-invoice"),
    path("facturas/prueba/", SandboxInvoiceView.as_view(), name="test-invoice"),
    path("credenciales/", SaveFiscalCredentialsView.as_view(), name="save-credentials"),
    path("perfil-fiscal/", SyncRecipientProfileView.as_view(), name="sync-profile"),
]
