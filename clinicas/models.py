# clinicas/models.py
"""
Entidades del sistema clínico que consume el módulo de facturación.

Solo se modelan los campos que la facturación lee o actualiza; el resto del
expediente (citas, consultas, planes) vive fuera de este repositorio.
"""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models

zip_code_validator = RegexValidator(
    regex=r"^\d{5}$",
    message="El código postal debe tener exactamente 5 dígitos.",
)


class Clinic(models.Model):
    """Tenant: cada clínica factura con su propio RFC y CSD."""

    name = models.CharField("Nombre / razón social", max_length=255)
    rfc = models.CharField("RFC", max_length=13, blank=True)
    fiscal_regime = models.CharField(
        "Régimen fiscal",
        max_length=3,
        blank=True,
        help_text="Clave del catálogo c_RegimenFiscal del SAT (ej. '612').",
    )
    address = models.CharField("Dirección", max_length=500, blank=True)
    zip_code = models.CharField(
        "Código postal",
        max_length=5,
        blank=True,
        validators=[zip_code_validator],
        help_text="Código postal de expedición. Si está vacío se intenta extraer de la dirección.",
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="clinicas",
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Clínica"
        verbose_name_plural = "Clínicas"

    def __str__(self) -> str:
        return f"{self.name} ({self.rfc or 'sin RFC'})"


class Person(models.Model):
    """Paciente. Incluye el perfil fiscal como receptor de CFDI."""

    clinic = models.ForeignKey(Clinic, related_name="persons", on_delete=models.CASCADE)
    full_name = models.CharField("Nombre completo", max_length=255)

    # ----- Perfil fiscal del receptor -----
    rfc = models.CharField("RFC", max_length=13, blank=True)
    fiscal_address = models.CharField("Domicilio fiscal", max_length=500, blank=True)
    fiscal_regime = models.CharField("Régimen fiscal", max_length=3, blank=True)
    cfdi_use = models.CharField(
        "Uso de CFDI",
        max_length=4,
        blank=True,
        help_text="Clave del catálogo c_UsoCFDI (ej. 'D01').",
    )
    fiscal_zip_code = models.CharField(
        "Código postal fiscal",
        max_length=5,
        blank=True,
        validators=[zip_code_validator],
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Persona"
        verbose_name_plural = "Personas"

    def __str__(self) -> str:
        return self.full_name

    @property
    def tax_profile(self):
        from facturacion.dto import RecipientTaxProfile

        return RecipientTaxProfile.from_person(self)


class Service(models.Model):
    """Servicio facturable de la clínica, con sus claves SAT."""

    clinic = models.ForeignKey(Clinic, related_name="services", on_delete=models.CASCADE)
    name = models.CharField(max_length=255)
    sat_product_code = models.CharField(
        "Clave producto/servicio SAT",
        max_length=8,
        default="85101702",
    )
    sat_unit_code = models.CharField("Clave unidad SAT", max_length=3, default="E48")
    sat_tax_object_code = models.CharField(
        "Objeto de impuesto",
        max_length=2,
        default="02",
        help_text="c_ObjetoImp. Sin desglose de impuestos el PAC lo trata como exento.",
    )

    class Meta:
        verbose_name = "Servicio"
        verbose_name_plural = "Servicios"

    def __str__(self) -> str:
        return self.name


class Payment(models.Model):
    """
    Pago registrado por el módulo de cobranza. Para facturación es de solo lectura:
    su id es la llave de unicidad de la factura.
    """

    class Method(models.TextChoices):
        CASH = "cash", "Efectivo"
        TRANSFER = "transfer", "Transferencia"
        CARD = "card", "Tarjeta"
        OTHER = "other", "Otro"

    clinic = models.ForeignKey(Clinic, related_name="payments", on_delete=models.CASCADE)
    person = models.ForeignKey(
        Person,
        related_name="payments",
        null=True,
        on_delete=models.SET_NULL,
    )
    service = models.ForeignKey(
        Service,
        related_name="payments",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    payment_method = models.CharField(
        max_length=20,
        choices=Method.choices,
        default=Method.CASH,
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Pago"
        verbose_name_plural = "Pagos"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Pago {self.pk} – {self.amount} ({self.get_payment_method_display()})"
