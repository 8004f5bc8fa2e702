# facturacion/services/locks.py
# -*- coding: utf-8 -*-
"""
Lock consultivo por pago mientras dura un intento de timbrado.

Usa `cache.add`, que es atómico en los backends de Django (locmem, Redis,
memcached). Con LocMemCache el lock solo protege dentro de un proceso; en
despliegues con varios workers se configura REDIS_URL.
"""
from __future__ import annotations

import contextlib
import logging
import uuid
from typing import Iterator, Optional

from django.conf import settings
from django.core.cache import cache

from facturacion.exceptions import IssuanceInProgressError

logger = logging.getLogger("facturacion")


class PaymentIssuanceLock:
    key_prefix = "facturacion:issuance-lock"

    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout or getattr(settings, "FISCAL_ISSUANCE_LOCK_TIMEOUT", 120)

    def _key(self, payment_id: int | str) -> str:
        return f"{self.key_prefix}:{payment_id}"

    @contextlib.contextmanager
    def hold(self, payment_id: int | str) -> Iterator[None]:
        key = self._key(payment_id)
        token = uuid.uuid4().hex
        if not cache.add(key, token, self.timeout):
            logger.warning("Timbrado del pago %s ya en curso; se rechaza el intento.", payment_id)
            raise IssuanceInProgressError(
                "Ya hay una facturación en curso para este pago. Espere unos segundos."
            )
        try:
            yield
        finally:
            # Solo liberamos si el lock sigue siendo nuestro (pudo expirar).
            if cache.get(key) == token:
                cache.delete(key)
