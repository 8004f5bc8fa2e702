# facturacion/management/commands/validate_fiscal_credentials.py
# -*- coding: utf-8 -*-
"""
Valida la configuración fiscal de las clínicas sin contactar a FiscalAPI:

- RFC, razón social y régimen fiscal de la clínica
- Código postal de expedición (campo o extraído de la dirección)
- Rutas CSD (.cer/.key) y contraseña de la llave privada
- Persona y API key en FiscalAPI (estado del aprovisionamiento)

Uso:

    python manage.py validate_fiscal_credentials
    python manage.py validate_fiscal_credentials --clinic=1
"""

from typing import Optional

from django.core.management.base import BaseCommand, CommandError

from clinicas.models import Clinic
from facturacion.exceptions import ValidationError
from facturacion.services.invoicing import InvoiceService
from facturacion.utils import resolve_zip_code


class Command(BaseCommand):
    help = "Verifica RFC, régimen, CSD y API key de FiscalAPI por clínica."

    def add_arguments(self, parser):
        parser.add_argument(
            "--clinic",
            type=int,
            dest="clinic_id",
            help="ID de la clínica específica a validar.",
        )

    def handle(self, *args, **options):
        clinic_id: Optional[int] = options.get("clinic_id")
        qs = Clinic.objects.select_related("fiscal_credential").order_by("id")

        if clinic_id is not None:
            qs = qs.filter(id=clinic_id)
            if not qs.exists():
                raise CommandError(f"No existe Clínica con id={clinic_id}.")

        if not qs.exists():
            raise CommandError("No hay clínicas registradas.")

        total_errores = 0

        for clinic in qs:
            self.stdout.write(
                self.style.NOTICE(f"\n▶ Clínica {clinic.id} – {clinic.name} ({clinic.rfc or 'sin RFC'})")
            )
            errores = []

            credential = getattr(clinic, "fiscal_credential", None)
            if credential is None:
                errores.append("La clínica no tiene credenciales fiscales (estado: unprovisioned).")
            else:
                self.stdout.write(f"  Estado: {credential.state} · ambiente: {credential.environment}")
                try:
                    InvoiceService.validate_issuer_identity(clinic, credential)
                except ValidationError as exc:
                    errores.append(exc.message)

            if not resolve_zip_code(clinic.zip_code, clinic.address):
                errores.append(
                    "Sin código postal de expedición: captura zip_code o incluye "
                    "un CP de 5 dígitos en la dirección."
                )

            if errores:
                total_errores += len(errores)
                self.stderr.write(
                    self.style.ERROR(
                        f"✗ Clínica {clinic.id}: se encontraron {len(errores)} problemas de configuración."
                    )
                )
                for e in errores:
                    self.stderr.write(f"  - {e}")
            else:
                self.stdout.write(self.style.SUCCESS("✓ Clínica lista para facturar."))

        if total_errores:
            raise CommandError(
                f"\nSe encontraron en total {total_errores} problemas de configuración fiscal. "
                f"Corrige y vuelve a ejecutar."
            )

        self.stdout.write(self.style.SUCCESS("\n✓ Todas las clínicas pasan la validación fiscal."))
