# facturacion/dto.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from clinicas.models import Person


@dataclass(frozen=True)
class RecipientTaxProfile:
    """Datos fiscales del receptor (paciente) tal como llegan en la solicitud."""

    rfc: str
    cfdi_use: str
    fiscal_address: str
    fiscal_regime: str
    zip_code: Optional[str] = None

    @classmethod
    def from_person(cls, person: Person) -> "RecipientTaxProfile":
        return cls(
            rfc=person.rfc,
            cfdi_use=person.cfdi_use,
            fiscal_address=person.fiscal_address,
            fiscal_regime=person.fiscal_regime,
            zip_code=person.fiscal_zip_code or None,
        )

    def normalized(self) -> "RecipientTaxProfile":
        return RecipientTaxProfile(
            rfc=(self.rfc or "").strip().upper(),
            cfdi_use=(self.cfdi_use or "").strip().upper(),
            fiscal_address=(self.fiscal_address or "").strip(),
            fiscal_regime=(self.fiscal_regime or "").strip(),
            zip_code=(self.zip_code or "").strip() or None,
        )

    def person_updates(self, person: Person) -> Dict[str, Any]:
        """Campos de `person` que cambiarían al aplicar este perfil."""
        wanted = {
            "rfc": self.rfc,
            "cfdi_use": self.cfdi_use,
            "fiscal_address": self.fiscal_address,
            "fiscal_regime": self.fiscal_regime,
        }
        if self.zip_code:
            wanted["fiscal_zip_code"] = self.zip_code
        return {
            field: value
            for field, value in wanted.items()
            if getattr(person, field) != value
        }


@dataclass(frozen=True)
class InvoiceResult:
    uuid: Optional[str]
    status: str
    pdf_url: Optional[str] = None
    xml_url: Optional[str] = None
