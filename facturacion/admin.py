# facturacion/admin.py
from __future__ import annotations

from django.contrib import admin

from facturacion.models import FiscalCredential, Invoice


@admin.register(FiscalCredential)
class FiscalCredentialAdmin(admin.ModelAdmin):
    list_display = (
        "clinic",
        "environment",
        "fiscal_person_id",
        "credential_state",
        "updated_at",
    )
    list_filter = ("environment",)
    search_fields = ("clinic__name", "clinic__rfc", "fiscal_person_id")
    readonly_fields = (
        "fiscal_person_id",
        "private_key_password",
        "fiscal_api_key",
        "created_at",
        "updated_at",
    )
    fieldsets = (
        (
            "Clínica",
            {"fields": ("clinic", "environment")},
        ),
        (
            "CSD",
            {
                "fields": (
                    "certificate_path",
                    "private_key_path",
                    "private_key_password",
                )
            },
        ),
        (
            "FiscalAPI",
            {
                "fields": (
                    "fiscal_person_id",
                    "fiscal_api_key",
                )
            },
        ),
        (
            "Auditoría",
            {"fields": ("created_at", "updated_at")},
        ),
    )

    @admin.display(description="Estado")
    def credential_state(self, obj: FiscalCredential) -> str:
        return obj.state


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "payment",
        "clinic",
        "fiscal_uuid",
        "status",
        "environment",
        "created_at",
    )
    list_filter = ("status", "environment", "clinic")
    search_fields = ("fiscal_uuid", "payment__id", "clinic__name")
    readonly_fields = (
        "clinic",
        "payment",
        "fiscal_uuid",
        "status",
        "pdf_url",
        "xml_url",
        "error_message",
        "idempotency_key",
        "environment",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request) -> bool:
        # Las facturas solo nacen del timbrado.
        return False
