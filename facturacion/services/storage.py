# facturacion/services/storage.py
# -*- coding: utf-8 -*-
"""
Lectura de los archivos CSD (.cer y .key) de cada clínica.

Los archivos se guardan en el storage configurado en settings.FISCAL_FILES_STORAGE
(un alias de settings.STORAGES); cualquier backend de Django sirve.
"""
from __future__ import annotations

import base64
import logging
from typing import Optional

from django.conf import settings
from django.core.files.storage import Storage, storages

from facturacion.exceptions import StorageError

logger = logging.getLogger("facturacion")


class CsdStorage:
    def __init__(self, storage: Optional[Storage] = None):
        self._storage = storage

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            self._storage = storages[getattr(settings, "FISCAL_FILES_STORAGE", "fiscal")]
        return self._storage

    def read_bytes(self, path: str, label: str) -> bytes:
        if not path:
            raise StorageError(f"No hay ruta configurada para el archivo de {label}.")
        try:
            with self.storage.open(path, "rb") as fh:
                data = fh.read()
        except FileNotFoundError as exc:
            raise StorageError(f"No se encontró el archivo de {label} en '{path}'.") from exc
        except OSError as exc:
            logger.exception("Error leyendo archivo de %s (%s): %s", label, path, exc)
            raise StorageError(f"Error al descargar el archivo de {label} en '{path}': {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            # Backends remotos (S3, GCS) lanzan sus propios tipos de error.
            logger.exception("Error del storage leyendo %s (%s): %s", label, path, exc)
            raise StorageError(
                f"Error al descargar el archivo de {label} en '{path}': {exc}"
            ) from exc

        if not data:
            raise StorageError(f"El archivo de {label} en '{path}' está vacío.")
        return data

    def read_base64(self, path: str, label: str) -> str:
        return base64.b64encode(self.read_bytes(path, label)).decode("ascii")
