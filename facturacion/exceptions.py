# facturacion/exceptions.py
# -*- coding: utf-8 -*-
"""
Taxonomía de errores del módulo de facturación.

Cada excepción lleva el status HTTP con el que la vista responde; los
servicios nunca construyen respuestas, solo lanzan.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class FacturacionError(Exception):
    """Base de todos los errores de negocio de facturación."""

    status_code = 500
    default_message = "Ocurrió un error inesperado en el servidor."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_response_data(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(FacturacionError):
    """Datos de entrada o identidad fiscal incompletos. Lo corrige el usuario."""

    status_code = 400


class NotFoundError(FacturacionError):
    """Pago, persona, clínica o credenciales inexistentes."""

    status_code = 404


class AlreadyIssuedError(FacturacionError):
    """El pago ya tiene una factura timbrada; no se vuelve a enviar al PAC."""

    status_code = 409


class IssuanceInProgressError(FacturacionError):
    """Otra solicitud está emitiendo la factura de este mismo pago."""

    status_code = 409


class IssuerError(FacturacionError):
    """FiscalAPI rechazó la solicitud o no fue posible comunicarse con el servicio."""

    status_code = 502

    def __init__(self, message: Optional[str] = None, issuer_status: int = 0):
        self.issuer_status = issuer_status
        super().__init__(message)


class StorageError(FacturacionError):
    """No se pudo descargar un archivo CSD del storage."""

    status_code = 502


class PersistenceError(FacturacionError):
    """
    Falló una escritura local después de un timbrado exitoso.
    Solo se registra en logs; nunca se devuelve al cliente.
    """


class SecretCodecError(FacturacionError):
    """Llave ausente, versión desconocida o texto cifrado inválido."""


class IssuanceUnconfirmedError(FacturacionError):
    """
    FiscalAPI aceptó la factura (2xx) pero la respuesta no trae un UUID legible.
    El CFDI puede existir en el PAC: no se reintenta, se concilia manualmente.
    """

    status_code = 502
