# facturacion/models.py
from __future__ import annotations

from django.db import models

from clinicas.models import Clinic, Payment


class FiscalCredential(models.Model):
    """
    Identidad fiscal de una clínica ante FiscalAPI.

    El RFC, la razón social y el régimen se leen de la clínica; aquí viven las
    rutas de los archivos CSD, los secretos cifrados (contraseña de la llave
    privada y API key) y el id de la persona creada en FiscalAPI.
    """

    ENV_SANDBOX = "sandbox"
    ENV_PRODUCTION = "production"
    ENVIRONMENT_CHOICES = (
        (ENV_SANDBOX, "Pruebas"),
        (ENV_PRODUCTION, "Producción"),
    )

    STATE_UNPROVISIONED = "unprovisioned"
    STATE_PERSON_CREATED = "person-created"
    STATE_KEY_ISSUED = "key-issued"

    clinic = models.OneToOneField(
        Clinic,
        related_name="fiscal_credential",
        on_delete=models.CASCADE,
    )

    # ----- CSD (rutas en el storage "fiscal") -----
    certificate_path = models.CharField(max_length=500, blank=True)
    private_key_path = models.CharField(max_length=500, blank=True)
    private_key_password = models.TextField(
        blank=True,
        help_text="Contraseña de la llave privada cifrada con SecretCodec (v<versión>:...).",
    )

    # ----- FiscalAPI -----
    fiscal_person_id = models.CharField(max_length=64, null=True, blank=True)
    fiscal_api_key = models.TextField(
        blank=True,
        help_text="API key de la clínica cifrada con SecretCodec. Se reemplaza en cada guardado.",
    )
    environment = models.CharField(
        max_length=10,
        choices=ENVIRONMENT_CHOICES,
        default=ENV_SANDBOX,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Credencial fiscal"
        verbose_name_plural = "Credenciales fiscales"

    def __str__(self) -> str:
        return f"Credenciales fiscales de {self.clinic} ({self.environment})"

    @property
    def state(self) -> str:
        if not self.fiscal_person_id:
            return self.STATE_UNPROVISIONED
        if not self.fiscal_api_key:
            return self.STATE_PERSON_CREATED
        return self.STATE_KEY_ISSUED

    @property
    def is_production(self) -> bool:
        return self.environment == self.ENV_PRODUCTION


class Invoice(models.Model):
    """
    Resultado del timbrado de un pago. A lo sumo una fila por pago: tanto el
    éxito como el error se guardan con upsert sobre `payment`.
    """

    STATUS_ISSUED = "Timbrada"
    STATUS_ERROR = "error"
    # El PAC respondió 2xx sin UUID legible: el CFDI puede existir allá.
    STATUS_UNCONFIRMED = "por conciliar"

    clinic = models.ForeignKey(Clinic, related_name="invoices", on_delete=models.CASCADE)
    payment = models.OneToOneField(
        Payment,
        related_name="invoice",
        on_delete=models.CASCADE,
    )

    fiscal_uuid = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    status = models.CharField(max_length=64, default=STATUS_ISSUED)
    pdf_url = models.URLField(max_length=1000, blank=True)
    xml_url = models.URLField(max_length=1000, blank=True)
    error_message = models.TextField(blank=True)

    idempotency_key = models.CharField(max_length=64, blank=True)
    environment = models.CharField(
        max_length=10,
        choices=FiscalCredential.ENVIRONMENT_CHOICES,
        default=FiscalCredential.ENV_SANDBOX,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Factura"
        verbose_name_plural = "Facturas"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Factura {self.fiscal_uuid or '(sin UUID)'} – pago {self.payment_id}"

    @property
    def is_issued(self) -> bool:
        return bool(self.fiscal_uuid) and self.status != self.STATUS_ERROR

    @property
    def requires_reconciliation(self) -> bool:
        return self.status == self.STATUS_UNCONFIRMED

    @property
    def blocks_reissue(self) -> bool:
        """Ningún intento nuevo se envía al PAC mientras esto sea True."""
        return self.is_issued or self.requires_reconciliation
