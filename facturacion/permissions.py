# facturacion/permissions.py
from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission

from clinicas.models import Clinic

ADMIN_GROUPS = ["ADMIN", "Admin", "Administrador"]


def _is_admin(user) -> bool:
    if user.is_superuser:
        return True
    return user.groups.filter(name__in=ADMIN_GROUPS).exists()


def user_in_clinic(user, clinic_id: Optional[int]) -> bool:
    """
    Aislamiento por tenant: el usuario debe ser miembro de la clínica.
    El superusuario opera sobre cualquier clínica.
    """
    if not user or not user.is_authenticated or clinic_id is None:
        return False
    if user.is_superuser:
        return True
    return Clinic.objects.filter(pk=clinic_id, members=user).exists()


class CanIssueInvoice(BasePermission):
    """
    Emitir facturas y actualizar el perfil fiscal del receptor.

    - user.is_superuser
    - user.has_perm('facturacion.add_invoice')
    - grupo ADMIN o FACTURACION
    """

    message = "No tienes permisos para emitir facturas."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not user.is_authenticated:
            return False

        if user.is_superuser:
            return True

        if user.has_perm("facturacion.add_invoice"):
            return True

        return user.groups.filter(name__in=[*ADMIN_GROUPS, "FACTURACION"]).exists()


class CanManageFiscalCredentials(BasePermission):
    """
    Guardar credenciales CSD y lanzar facturas de prueba.

    - user.is_superuser
    - user.has_perm('facturacion.change_fiscalcredential')
    - grupo ADMIN
    """

    message = "No tienes permisos para administrar las credenciales fiscales."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not user.is_authenticated:
            return False

        if _is_admin(user):
            return True

        return user.has_perm("facturacion.change_fiscalcredential")
