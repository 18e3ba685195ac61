"""
WhatsApp Provider Abstraction Layer
"""
from conditions.domain.services.whatsapp.base_provider import (
    BaseWhatsAppProvider,
    ListRow,
    ListSection,
    ReplyButton,
)
from conditions.domain.services.whatsapp.provider_factory import (
    get_whatsapp_provider,
    reset_providers,
)

__all__ = [
    "BaseWhatsAppProvider",
    "ListRow",
    "ListSection",
    "ReplyButton",
    "get_whatsapp_provider",
    "reset_providers",
]
