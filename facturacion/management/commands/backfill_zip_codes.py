# facturacion/management/commands/backfill_zip_codes.py
# -*- coding: utf-8 -*-
"""
Migración de datos heredados: llena Clinic.zip_code y Person.fiscal_zip_code
a partir de la dirección en texto libre (primer número aislado de 5 dígitos).

Solo toca registros con el campo vacío. Revisa el resultado con --dry-run:
una dirección como "Calle 12345, CP 06000" produce un CP incorrecto.

Uso:

    python manage.py backfill_zip_codes --dry-run
    python manage.py backfill_zip_codes
"""

from django.core.management.base import BaseCommand
from django.db import transaction

from clinicas.models import Clinic, Person
from facturacion.utils import extract_zip_code


class Command(BaseCommand):
    help = "Extrae el código postal de las direcciones libres de clínicas y personas."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            dest="dry_run",
            help="Muestra los cambios sin guardarlos.",
        )

    def _backfill(self, qs, source_field: str, target_field: str, label: str, dry_run: bool) -> int:
        cambios = 0
        sin_cp = 0
        for obj in qs.filter(**{target_field: ""}).only("id", source_field, target_field):
            zip_code = extract_zip_code(getattr(obj, source_field))
            if not zip_code:
                sin_cp += 1
                continue
            cambios += 1
            self.stdout.write(f"  {label} {obj.id}: {zip_code}")
            if not dry_run:
                qs.filter(pk=obj.pk).update(**{target_field: zip_code})

        if sin_cp:
            self.stdout.write(
                self.style.WARNING(f"  {sin_cp} {label.lower()}s sin CP reconocible en la dirección.")
            )
        return cambios

    def handle(self, *args, **options):
        dry_run: bool = options.get("dry_run", False)

        with transaction.atomic():
            clinicas = self._backfill(Clinic.objects.all(), "address", "zip_code", "Clínica", dry_run)
            personas = self._backfill(
                Person.objects.all(), "fiscal_address", "fiscal_zip_code", "Persona", dry_run
            )

        sufijo = " (dry-run, sin guardar)" if dry_run else ""
        self.stdout.write(
            self.style.SUCCESS(
                f"\n✓ Códigos postales: {clinicas} clínicas y {personas} personas{sufijo}."
            )
        )
