# facturacion/services/secret_codec.py
# -*- coding: utf-8 -*-
"""
Cifrado de secretos fiscales (contraseña de la llave privada CSD y API key de FiscalAPI).

Formato almacenado:

    v<versión>:<base64(nonce[12] + ciphertext + tag[16])>

- AES-256-GCM (AEAD). La etiqueta de versión se autentica como datos asociados,
  así que cambiar el prefijo invalida el texto cifrado.
- Las llaves se configuran en settings.FISCAL_SECRET_KEYS ("1:<b64>,2:<b64>").
  Se cifra siempre con FISCAL_SECRET_ACTIVE_VERSION y se descifra con la versión
  indicada en el prefijo, de modo que rotar la llave no rompe valores previos.
- Valores heredados sin prefijo (base64 plano de la versión anterior del sistema)
  se siguen leyendo; `needs_rotation` los reporta para el comando de rotación.
"""
from __future__ import annotations

import base64
import binascii
import functools
import logging
import os
from typing import Dict, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from django.conf import settings

from facturacion.exceptions import SecretCodecError

logger = logging.getLogger("facturacion")

NONCE_SIZE = 12
KEY_SIZE = 32
VERSION_PREFIX = "v"


def parse_key_ring(raw: str) -> Dict[str, bytes]:
    """
    Convierte "1:<b64>,2:<b64>" en {"1": b"...", "2": b"..."}.
    Cada llave debe medir 32 bytes (AES-256).
    """
    ring: Dict[str, bytes] = {}
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        version, sep, encoded = chunk.partition(":")
        version = version.strip()
        if not sep or not version:
            raise SecretCodecError(
                "FISCAL_SECRET_KEYS mal formado: se espera 'versión:llave_base64'."
            )
        try:
            key = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SecretCodecError(
                f"La llave de cifrado versión {version} no es base64 válido."
            ) from exc
        if len(key) != KEY_SIZE:
            raise SecretCodecError(
                f"La llave de cifrado versión {version} debe medir {KEY_SIZE} bytes."
            )
        ring[version] = key
    return ring


class SecretCodec:
    def __init__(self, keys: Mapping[str, bytes], active_version: str):
        if active_version not in keys:
            raise SecretCodecError(
                f"No hay llave de cifrado configurada para la versión activa {active_version!r}."
            )
        self._keys = dict(keys)
        self.active_version = active_version

    def encode(self, plaintext: str) -> str:
        if plaintext is None:
            raise SecretCodecError("No se puede cifrar un secreto vacío.")
        tag = f"{VERSION_PREFIX}{self.active_version}"
        nonce = os.urandom(NONCE_SIZE)
        aead = AESGCM(self._keys[self.active_version])
        sealed = aead.encrypt(nonce, plaintext.encode("utf-8"), tag.encode("ascii"))
        return f"{tag}:{base64.b64encode(nonce + sealed).decode('ascii')}"

    def decode(self, stored: str) -> str:
        if not stored:
            raise SecretCodecError("No hay secreto almacenado para descifrar.")

        version = self.version_of(stored)
        if version is None:
            return self._decode_legacy(stored)

        key = self._keys.get(version)
        if key is None:
            raise SecretCodecError(
                f"El secreto fue cifrado con la versión {version}, que ya no está configurada."
            )

        tag, _, payload = stored.partition(":")
        try:
            blob = base64.b64decode(payload, validate=True)
            nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
            plaintext = AESGCM(key).decrypt(nonce, sealed, tag.encode("ascii"))
        except (binascii.Error, ValueError, InvalidTag) as exc:
            raise SecretCodecError("El secreto almacenado está corrupto o fue alterado.") from exc
        return plaintext.decode("utf-8")

    def needs_rotation(self, stored: str) -> bool:
        return bool(stored) and self.version_of(stored) != self.active_version

    @staticmethod
    def version_of(stored: str) -> Optional[str]:
        tag, sep, _ = (stored or "").partition(":")
        if sep and tag.startswith(VERSION_PREFIX) and tag[1:].isdigit():
            return tag[1:]
        return None

    @staticmethod
    def _decode_legacy(stored: str) -> str:
        try:
            return base64.b64decode(stored, validate=True).decode("utf-8")
        except (binascii.Error, ValueError, UnicodeDecodeError) as exc:
            raise SecretCodecError(
                "El secreto almacenado no tiene versión y no es base64 válido."
            ) from exc


@functools.lru_cache(maxsize=1)
def get_secret_codec() -> SecretCodec:
    """Codec único por proceso, construido desde settings."""
    keys = parse_key_ring(getattr(settings, "FISCAL_SECRET_KEYS", ""))
    active = str(getattr(settings, "FISCAL_SECRET_ACTIVE_VERSION", "1"))
    if not keys:
        raise SecretCodecError(
            "FISCAL_SECRET_KEYS no está configurado; no es posible guardar ni leer secretos fiscales."
        )
    logger.info("SecretCodec inicializado (versiones=%s, activa=%s)", sorted(keys), active)
    return SecretCodec(keys, active)
