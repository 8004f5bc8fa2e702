# facturacion/management/commands/rotate_fiscal_secrets.py
# -*- coding: utf-8 -*-
"""
Re-cifra con la llave activa (FISCAL_SECRET_ACTIVE_VERSION) todas las
contraseñas CSD y API keys guardadas, incluidos los valores heredados en
base64 sin versión.

Uso:

    python manage.py rotate_fiscal_secrets --dry-run
    python manage.py rotate_fiscal_secrets

Las llaves anteriores deben seguir en FISCAL_SECRET_KEYS hasta que el
comando termine sin errores.
"""

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from facturacion.exceptions import SecretCodecError
from facturacion.models import FiscalCredential
from facturacion.services.secret_codec import get_secret_codec

SECRET_FIELDS = ("private_key_password", "fiscal_api_key")


class Command(BaseCommand):
    help = "Re-cifra los secretos fiscales con la versión de llave activa."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            dest="dry_run",
            help="Solo reporta cuántos secretos se re-cifrarían.",
        )

    def handle(self, *args, **options):
        dry_run: bool = options.get("dry_run", False)
        try:
            codec = get_secret_codec()
        except SecretCodecError as exc:
            raise CommandError(exc.message) from exc

        pendientes = 0
        fallidos = 0

        for credential in FiscalCredential.objects.select_related("clinic").order_by("id"):
            updates = {}
            for field in SECRET_FIELDS:
                stored = getattr(credential, field)
                if not codec.needs_rotation(stored):
                    continue
                try:
                    updates[field] = codec.encode(codec.decode(stored))
                except SecretCodecError as exc:
                    fallidos += 1
                    self.stderr.write(
                        self.style.ERROR(f"✗ Clínica {credential.clinic_id} · {field}: {exc.message}")
                    )

            if not updates:
                continue

            pendientes += len(updates)
            self.stdout.write(
                f"  Clínica {credential.clinic_id}: {', '.join(sorted(updates))}"
                + (" (dry-run)" if dry_run else "")
            )
            if dry_run:
                continue

            with transaction.atomic():
                FiscalCredential.objects.filter(pk=credential.pk).update(**updates)

        if fallidos:
            raise CommandError(
                f"No se pudieron descifrar {fallidos} secretos. "
                f"Verifica que FISCAL_SECRET_KEYS incluya todas las versiones usadas."
            )

        verbo = "se re-cifrarían" if dry_run else "re-cifrados"
        self.stdout.write(
            self.style.SUCCESS(
                f"\n✓ {pendientes} secretos {verbo} con la versión v{codec.active_version}."
            )
        )
