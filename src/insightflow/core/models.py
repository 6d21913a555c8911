"""
Pydantic models for the canonical analytics shapes.

Both provider adapters translate their payloads into these types; nothing
downstream of an adapter sees a provider-specific shape.
"""
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class ProviderType(str, Enum):
    UMAMI = "umami"
    PLAUSIBLE = "plausible"


class SeriesMetric(str, Enum):
    """Which count a time series carries."""
    PAGEVIEWS = "pageviews"
    VISITORS = "visitors"


class Dimension(str, Enum):
    """Breakdown dimensions. Not every provider supports every one."""
    PAGE = "page"
    REFERRER = "referrer"
    COUNTRY = "country"
    REGION = "region"
    CITY = "city"
    DEVICE = "device"
    BROWSER = "browser"
    OS = "os"
    LANGUAGE = "language"
    SCREEN = "screen"
    EVENT = "event"
    TITLE = "title"
    HOSTNAME = "hostname"
    ENTRY_PAGE = "entry_page"
    EXIT_PAGE = "exit_page"


def strip_scheme(url: str) -> str:
    return url.removeprefix("https://").removeprefix("http://")


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Accounts
# =============================================================================

class AccountCredentials(BaseModel):
    """Exactly one of token (Umami) or api_key (Plausible)."""
    token: str | None = None
    api_key: str | None = None


class LoginCredentials(BaseModel):
    """What the user typed: username/password for Umami, api_key for Plausible."""
    username: str | None = None
    password: str | None = None
    api_key: str | None = None


class Account(BaseModel):
    """A configured connection to one analytics server."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    server_url: str
    provider_type: ProviderType
    credentials: AccountCredentials
    sites: list[str] | None = None  # Plausible only
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _check_credentials(self) -> "Account":
        creds = self.credentials
        if self.provider_type is ProviderType.UMAMI:
            if not creds.token or creds.api_key:
                raise ValueError("Umami accounts need a token and no API key")
        else:
            if not creds.api_key or creds.token:
                raise ValueError("Plausible accounts need an API key and no token")
        return self

    @property
    def display_name(self) -> str:
        return self.name or strip_scheme(self.server_url)

    @property
    def secret(self) -> str:
        """The single populated credential."""
        return self.credentials.token or self.credentials.api_key


# =============================================================================
# Websites and metrics
# =============================================================================

class Website(BaseModel):
    id: str
    name: str
    domain: str | None = None
    share_id: str | None = None
    team_id: str | None = None
    reset_at: datetime | None = None
    created_at: datetime | None = None
    provider: ProviderType

    @property
    def display_domain(self) -> str:
        return strip_scheme(self.domain or self.name)


class StatValue(BaseModel):
    """A total and its change against the comparison period."""
    value: int = 0
    change: int = 0

    @property
    def previous(self) -> int:
        return self.value - self.change

    @property
    def change_percent(self) -> float:
        previous = self.previous
        if previous == 0:
            return 0.0
        return self.change / previous * 100


class MetricTotals(BaseModel):
    """Raw totals for one period."""
    visitors: int = 0
    pageviews: int = 0
    visits: int = 0
    bounces: int = 0
    totaltime: int = 0


class Stats(BaseModel):
    visitors: StatValue = Field(default_factory=StatValue)
    pageviews: StatValue = Field(default_factory=StatValue)
    visits: StatValue = Field(default_factory=StatValue)
    bounces: StatValue = Field(default_factory=StatValue)
    totaltime: StatValue = Field(default_factory=StatValue)

    @classmethod
    def from_totals(cls, current: MetricTotals, previous: MetricTotals) -> "Stats":
        """Build deltas from two period snapshots."""
        fields = {}
        for name in MetricTotals.model_fields:
            value = getattr(current, name)
            fields[name] = StatValue(value=value, change=value - getattr(previous, name))
        return cls(**fields)

    @computed_field
    @property
    def bounce_rate(self) -> float:
        if self.visits.value <= 0:
            return 0.0
        return self.bounces.value / self.visits.value * 100

    @computed_field
    @property
    def average_time(self) -> float:
        if self.visits.value <= 0:
            return 0.0
        return self.totaltime.value / self.visits.value


class ChartPoint(BaseModel):
    """One time-series bucket, naive local time."""
    timestamp: datetime
    value: int = 0


class MetricItem(BaseModel):
    """A breakdown row, e.g. ("/pricing", 120)."""
    name: str
    value: int = 0


def sort_by_value(items: list[MetricItem]) -> list[MetricItem]:
    return sorted(items, key=lambda item: item.value, reverse=True)


# =============================================================================
# Realtime and sessions
# =============================================================================

class RealtimePageview(BaseModel):
    url: str
    referrer: str | None = None
    timestamp: datetime | None = None
    country: str | None = None


class RealtimeEvent(BaseModel):
    name: str
    url: str | None = None
    timestamp: datetime | None = None


class RealtimeSnapshot(BaseModel):
    active_visitors: int = 0
    pageviews: list[RealtimePageview] = []
    events: list[RealtimeEvent] = []
    top_pages: list[MetricItem] = []
    countries: list[MetricItem] = []


class SessionSummary(BaseModel):
    """A visitor session as listed by Umami."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    browser: str | None = None
    os: str | None = None
    device: str | None = None
    country: str | None = None
    first_at: datetime | None = Field(default=None, alias="firstAt")
    last_at: datetime | None = Field(default=None, alias="lastAt")
    visits: int = 0
    views: int = 0


class SessionActivity(BaseModel):
    """One pageview or event inside a session; event_type 1 is a pageview."""
    model_config = ConfigDict(populate_by_name=True)

    created_at: datetime = Field(alias="createdAt")
    url_path: str | None = Field(default=None, alias="urlPath")
    url_query: str | None = Field(default=None, alias="urlQuery")
    referrer_domain: str | None = Field(default=None, alias="referrerDomain")
    event_id: str | None = Field(default=None, alias="eventId")
    event_type: int | None = Field(default=None, alias="eventType")
    event_name: str | None = Field(default=None, alias="eventName")
    visit_id: str | None = Field(default=None, alias="visitId")

    @property
    def is_pageview(self) -> bool:
        return self.event_type == 1

    @property
    def is_event(self) -> bool:
        return self.event_type == 2


# =============================================================================
# Umami administration
# =============================================================================

class UmamiUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    role: str = "user"
    created_at: datetime | None = Field(default=None, alias="createdAt")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class MemberUser(BaseModel):
    id: str
    username: str


class TeamMember(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    team_id: str = Field(alias="teamId")
    role: str = "team-member"
    user: MemberUser | None = None


class Team(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    access_code: str | None = Field(default=None, alias="accessCode")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    members: list[TeamMember] | None = None
