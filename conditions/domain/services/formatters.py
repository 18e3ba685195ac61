"""
Caption and date formatting for delivered content
"""
from datetime import datetime
from typing import Optional

from conditions.domain.models import CONTENT_TYPE_CONFIG, ContentType

_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}


def ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    return f"{day}{_SUFFIXES.get(day % 10, 'th')}"


def short_date(value: datetime) -> str:
    """12th Jan"""
    return f"{ordinal(value.day)} {value.strftime('%b')}"


def long_date(value: datetime) -> str:
    """Sat 12th March"""
    return f"{value.strftime('%a')} {ordinal(value.day)} {value.strftime('%B')}"


def bulletin_caption(massif_name: str, valid_to: datetime, risk_level: Optional[int]) -> str:
    """Vanoise • 12th Jan • 3 / 5"""
    caption = f"{massif_name} • {short_date(valid_to)}"
    if risk_level is not None:
        caption += f" • {risk_level} / 5"
    return caption


def image_caption(content_type: ContentType, massif_name: str, valid_to: datetime) -> str:
    caption = f"{content_type.emoji} {content_type.label} - {massif_name}"
    if CONTENT_TYPE_CONFIG[content_type].dated_caption:
        caption += f" - {long_date(valid_to)}"
    return caption


def image_filename(content_type: ContentType, massif_code: int) -> str:
    return f"{content_type.image_endpoint}-{massif_code}.jpg"
