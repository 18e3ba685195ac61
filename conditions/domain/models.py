"""
Domain types shared by the cron pipeline and the chat flows.

These are plain dataclasses, decoupled from the SQLAlchemy rows so the
pipeline can be exercised without a database.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class Platform(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class ContentType(str, Enum):
    """Deliverable products: the bulletin PDF and the auxiliary images"""
    BULLETIN = "bulletin"
    SNOW_REPORT = "snow_report"
    FRESH_SNOW = "fresh_snow"
    WEATHER = "weather"
    LAST_7_DAYS = "last_7_days"
    ROSE_PENTES = "rose_pentes"
    MONTAGNE_RISQUES = "montagne_risques"

    @property
    def label(self) -> str:
        return CONTENT_TYPE_CONFIG[self].label

    @property
    def emoji(self) -> str:
        return CONTENT_TYPE_CONFIG[self].emoji

    @property
    def image_endpoint(self) -> Optional[str]:
        return CONTENT_TYPE_CONFIG[self].image_endpoint

    @classmethod
    def image_types(cls) -> list["ContentType"]:
        return [ct for ct in cls if ct.image_endpoint]

    @classmethod
    def parse(cls, value: str) -> Optional["ContentType"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class ContentTypeInfo:
    label: str
    emoji: str
    image_endpoint: Optional[str] = None
    # image captions for forecasts carry the validity date
    dated_caption: bool = False


CONTENT_TYPE_CONFIG: dict[ContentType, ContentTypeInfo] = {
    ContentType.BULLETIN: ContentTypeInfo("Bulletin", "📄"),
    ContentType.SNOW_REPORT: ContentTypeInfo("Snow Report", "❄️", "montagne-enneigement"),
    ContentType.FRESH_SNOW: ContentTypeInfo("Fresh Snow", "🌨️", "graphe-neige-fraiche"),
    ContentType.WEATHER: ContentTypeInfo("Weather", "🌤️", "apercu-meteo", dated_caption=True),
    ContentType.LAST_7_DAYS: ContentTypeInfo("Last 7 Days", "📊", "sept-derniers-jours"),
    ContentType.ROSE_PENTES: ContentTypeInfo("Aspect Rose", "⭐️", "rose-pentes", dated_caption=True),
    ContentType.MONTAGNE_RISQUES: ContentTypeInfo("Mountain Risks", "⚠️", "montagne-risques", dated_caption=True),
}


@dataclass(frozen=True)
class ContentPreferences:
    """
    Fully populated content selection.

    Partial flags from storage or user input are resolved exactly once in
    from_flags(); nothing downstream deals with missing keys.
    """
    bulletin: bool = True
    snow_report: bool = False
    fresh_snow: bool = False
    weather: bool = False
    last_7_days: bool = False
    rose_pentes: bool = False
    montagne_risques: bool = False

    @classmethod
    def from_flags(cls, flags: Mapping[str, Any] | None = None) -> "ContentPreferences":
        flags = flags or {}
        return cls(
            bulletin=flags.get("bulletin") is not False,
            **{
                ct.value: flags.get(ct.value) is True
                for ct in ContentType.image_types()
            },
        )

    @classmethod
    def everything(cls) -> "ContentPreferences":
        return cls(**{ct.value: True for ct in ContentType})

    @classmethod
    def only(cls, content_type: ContentType) -> "ContentPreferences":
        return cls(**{ct.value: ct is content_type for ct in ContentType})

    def enabled(self, content_type: ContentType) -> bool:
        return getattr(self, content_type.value)

    def toggled(self, content_type: ContentType) -> "ContentPreferences":
        return replace(self, **{content_type.value: not self.enabled(content_type)})

    def image_types(self) -> list[ContentType]:
        return [ct for ct in ContentType.image_types() if self.enabled(ct)]

    def any_enabled(self) -> bool:
        return any(self.as_dict().values())

    def as_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Massif:
    code: int
    name: str
    mountain: Optional[str] = None
    geometry: Optional[dict] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class BulletinMetadata:
    """What the upstream API reports for a massif's current bulletin"""
    massif: int
    valid_from: datetime
    valid_to: datetime
    risk_level: Optional[int] = None


@dataclass(frozen=True)
class BulletinRecord:
    """A stored bulletin version"""
    massif: int
    valid_from: datetime
    valid_to: datetime
    filename: str
    public_url: str
    risk_level: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        return self.valid_to < now


@dataclass(frozen=True)
class Subscriber:
    """A recipient of one massif on one platform with their content selection"""
    recipient: str
    preferences: ContentPreferences = field(default_factory=ContentPreferences)
