"""
Provider Factory - process-wide WhatsApp provider.
"""
from __future__ import annotations

import threading

from conditions.core.circuit_breaker import get_whatsapp_circuit_breaker
from conditions.core.logging import get_logger
from conditions.domain.services.whatsapp.base_provider import BaseWhatsAppProvider

logger = get_logger(__name__)

_provider: BaseWhatsAppProvider | None = None
_lock = threading.Lock()


def get_whatsapp_provider() -> BaseWhatsAppProvider:
    global _provider
    if _provider is None:
        with _lock:
            if _provider is None:
                from conditions.domain.services.whatsapp.pywa_provider import PyWaProvider

                _provider = PyWaProvider(circuit_breaker=get_whatsapp_circuit_breaker())
                logger.info(
                    "WhatsApp provider initialized",
                    extra_data={"provider": _provider.provider_name},
                )
    return _provider


def reset_providers() -> None:
    """Forget the cached provider (tests only)."""
    global _provider
    with _lock:
        _provider = None
