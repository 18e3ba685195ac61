"""
Input helpers for chat identifiers and platform text limits
"""


def mask_recipient(recipient: str) -> str:
    """Mask a phone number or chat id for logging (336123****)"""
    if len(recipient) < 4:
        return "****"
    return recipient[:-4] + "****"


def truncate(text: str, max_length: int) -> str:
    """Hard cut to a platform field limit (list titles, button labels)"""
    return text if len(text) <= max_length else text[:max_length]
