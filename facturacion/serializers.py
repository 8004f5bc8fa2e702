# facturacion/serializers.py
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from facturacion.dto import RecipientTaxProfile
from facturacion.models import FiscalCredential


class RecipientTaxProfileSerializer(serializers.Serializer):
    """Campos fiscales del receptor comunes a emitir factura y sincronizar perfil."""

    rfc = serializers.CharField(max_length=13, trim_whitespace=True)
    cfdi_use = serializers.CharField(max_length=4, trim_whitespace=True)
    fiscal_address = serializers.CharField(max_length=500, trim_whitespace=True)
    fiscal_regime = serializers.CharField(max_length=3, trim_whitespace=True)
    zip_code = serializers.RegexField(
        r"^\d{5}$",
        required=False,
        allow_blank=True,
        allow_null=True,
        error_messages={"invalid": "El código postal debe tener exactamente 5 dígitos."},
    )

    def validate_rfc(self, value: str) -> str:
        value = value.strip().upper()
        if len(value) not in (12, 13):
            raise serializers.ValidationError("El RFC debe tener 12 o 13 caracteres.")
        return value

    def validate_cfdi_use(self, value: str) -> str:
        return value.strip().upper()

    def to_profile(self) -> RecipientTaxProfile:
        data: Dict[str, Any] = self.validated_data
        return RecipientTaxProfile(
            rfc=data["rfc"],
            cfdi_use=data["cfdi_use"],
            fiscal_address=data["fiscal_address"],
            fiscal_regime=data["fiscal_regime"],
            zip_code=data.get("zip_code") or None,
        )


class IssueInvoiceSerializer(RecipientTaxProfileSerializer):
    payment_id = serializers.IntegerField(min_value=1)


class SyncRecipientProfileSerializer(RecipientTaxProfileSerializer):
    person_id = serializers.IntegerField(min_value=1)


class SaveFiscalCredentialsSerializer(serializers.Serializer):
    clinic_id = serializers.IntegerField(min_value=1)
    certificate_path = serializers.CharField(max_length=500)
    private_key_path = serializers.CharField(max_length=500)
    private_key_password = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        write_only=True,
    )
    environment = serializers.ChoiceField(
        choices=[c[0] for c in FiscalCredential.ENVIRONMENT_CHOICES],
        default=FiscalCredential.ENV_SANDBOX,
    )

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        cert = attrs["certificate_path"].strip()
        key = attrs["private_key_path"].strip()
        if cert == key:
            raise serializers.ValidationError(
                {"private_key_path": "La llave privada y el certificado no pueden ser el mismo archivo."}
            )
        attrs["certificate_path"] = cert
        attrs["private_key_path"] = key
        return attrs


class SandboxInvoiceSerializer(serializers.Serializer):
    clinic_id = serializers.IntegerField(min_value=1)
