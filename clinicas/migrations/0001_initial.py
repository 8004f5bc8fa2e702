import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


ZIP_CODE_VALIDATOR = django.core.validators.RegexValidator(
    message="El código postal debe tener exactamente 5 dígitos.",
    regex="^\\d{5}$",
)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Clinic",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255, verbose_name="Nombre / razón social")),
                ("rfc", models.CharField(blank=True, max_length=13, verbose_name="RFC")),
                (
                    "fiscal_regime",
                    models.CharField(
                        blank=True,
                        help_text="Clave del catálogo c_RegimenFiscal del SAT (ej. '612').",
                        max_length=3,
                        verbose_name="Régimen fiscal",
                    ),
                ),
                ("address", models.CharField(blank=True, max_length=500, verbose_name="Dirección")),
                (
                    "zip_code",
                    models.CharField(
                        blank=True,
                        help_text="Código postal de expedición. Si está vacío se intenta extraer de la dirección.",
                        max_length=5,
                        validators=[ZIP_CODE_VALIDATOR],
                        verbose_name="Código postal",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "members",
                    models.ManyToManyField(blank=True, related_name="clinicas", to=settings.AUTH_USER_MODEL),
                ),
            ],
            options={
                "verbose_name": "Clínica",
                "verbose_name_plural": "Clínicas",
            },
        ),
        migrations.CreateModel(
            name="Person",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("full_name", models.CharField(max_length=255, verbose_name="Nombre completo")),
                ("rfc", models.CharField(blank=True, max_length=13, verbose_name="RFC")),
                ("fiscal_address", models.CharField(blank=True, max_length=500, verbose_name="Domicilio fiscal")),
                ("fiscal_regime", models.CharField(blank=True, max_length=3, verbose_name="Régimen fiscal")),
                (
                    "cfdi_use",
                    models.CharField(
                        blank=True,
                        help_text="Clave del catálogo c_UsoCFDI (ej. 'D01').",
                        max_length=4,
                        verbose_name="Uso de CFDI",
                    ),
                ),
                (
                    "fiscal_zip_code",
                    models.CharField(
                        blank=True,
                        max_length=5,
                        validators=[ZIP_CODE_VALIDATOR],
                        verbose_name="Código postal fiscal",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "clinic",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="persons",
                        to="clinicas.clinic",
                    ),
                ),
            ],
            options={
                "verbose_name": "Persona",
                "verbose_name_plural": "Personas",
            },
        ),
        migrations.CreateModel(
            name="Service",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                (
                    "sat_product_code",
                    models.CharField(default="85101702", max_length=8, verbose_name="Clave producto/servicio SAT"),
                ),
                ("sat_unit_code", models.CharField(default="E48", max_length=3, verbose_name="Clave unidad SAT")),
                (
                    "sat_tax_object_code",
                    models.CharField(
                        default="02",
                        help_text="c_ObjetoImp. Sin desglose de impuestos el PAC lo trata como exento.",
                        max_length=2,
                        verbose_name="Objeto de impuesto",
                    ),
                ),
                (
                    "clinic",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="services",
                        to="clinicas.clinic",
                    ),
                ),
            ],
            options={
                "verbose_name": "Servicio",
                "verbose_name_plural": "Servicios",
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.01"))],
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("cash", "Efectivo"),
                            ("transfer", "Transferencia"),
                            ("card", "Tarjeta"),
                            ("other", "Otro"),
                        ],
                        default="cash",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "clinic",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="clinicas.clinic",
                    ),
                ),
                (
                    "person",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="clinicas.person",
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="clinicas.service",
                    ),
                ),
            ],
            options={
                "verbose_name": "Pago",
                "verbose_name_plural": "Pagos",
                "ordering": ["-created_at"],
            },
        ),
    ]
