import django.db.models.deletion
from django.db import migrations, models


ENVIRONMENT_CHOICES = [("sandbox", "Pruebas"), ("production", "Producción")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("clinicas", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="FiscalCredential",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("certificate_path", models.CharField(blank=True, max_length=500)),
                ("private_key_path", models.CharField(blank=True, max_length=500)),
                (
                    "private_key_password",
                    models.TextField(
                        blank=True,
                        help_text="Contraseña de la llave privada cifrada con SecretCodec (v<versión>:...).",
                    ),
                ),
                ("fiscal_person_id", models.CharField(blank=True, max_length=64, null=True)),
                (
                    "fiscal_api_key",
                    models.TextField(
                        blank=True,
                        help_text="API key de la clínica cifrada con SecretCodec. Se reemplaza en cada guardado.",
                    ),
                ),
                ("environment", models.CharField(choices=ENVIRONMENT_CHOICES, default="sandbox", max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "clinic",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="fiscal_credential",
                        to="clinicas.clinic",
                    ),
                ),
            ],
            options={
                "verbose_name": "Credencial fiscal",
                "verbose_name_plural": "Credenciales fiscales",
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fiscal_uuid", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("status", models.CharField(default="Timbrada", max_length=64)),
                ("pdf_url", models.URLField(blank=True, max_length=1000)),
                ("xml_url", models.URLField(blank=True, max_length=1000)),
                ("error_message", models.TextField(blank=True)),
                ("idempotency_key", models.CharField(blank=True, max_length=64)),
                ("environment", models.CharField(choices=ENVIRONMENT_CHOICES, default="sandbox", max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "clinic",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="invoices",
                        to="clinicas.clinic",
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="invoice",
                        to="clinicas.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Factura",
                "verbose_name_plural": "Facturas",
                "ordering": ["-created_at"],
            },
        ),
    ]
