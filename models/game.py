"""
models/game.py – Data models for catalogue entries and catalogue queries.

Game mirrors the JSON record served by the catalogue and agent services.
Absent fields fall back to empty values so a single partial record never
breaks a whole fetch; `missing_fields` reports which sort-relevant fields
were absent so callers can flag them.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# Fields that sorting and filtering rely on.
SORT_FIELDS: Tuple[str, ...] = ("genre", "views", "downloads", "date_added")

MAGNET_PREFIX: str = "magnet:?xt=urn:btih:"


class Author(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    username: str = ""


class Game(BaseModel):
    """
    One downloadable game in the catalogue.

    Attributes
    ----------
    id            : Unique identifier (``id`` or ``_id`` on the wire).
    genre         : Genre tags, order-preserving.
    size          : Free-form size string, e.g. "12.5 GB".
    date_added    : ISO-8601 timestamp string, used for "recent" ordering.
    image_url     : host/path fragment; the protocol is added by image_address.
    torrent_links : BitTorrent info-hashes.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    name: str = ""
    description: str = ""
    cracker: str = ""
    genre: Tuple[str, ...] = ()
    views: int = Field(default=0, ge=0)
    downloads: int = Field(default=0, ge=0)
    size: str = ""
    version: str = ""
    date_added: str = ""

    image_url: Optional[str] = None
    screenshot_urls: Tuple[str, ...] = ()
    links: Tuple[str, ...] = ()
    torrent_links: Tuple[str, ...] = ()
    steam_id: Union[str, int, None] = None
    is_online: bool = False
    author: Optional[Author] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null counts as absent: the default applies and missing_fields reports it.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @property
    def missing_fields(self) -> List[str]:
        return [name for name in SORT_FIELDS if name not in self.model_fields_set]

    @property
    def image_address(self) -> str:
        return f"http://{self.image_url}" if self.image_url else ""

    @property
    def screenshot_addresses(self) -> List[str]:
        return [f"http://{url}" for url in self.screenshot_urls]

    @property
    def magnet_links(self) -> List[str]:
        return [f"{MAGNET_PREFIX}{info_hash}" for info_hash in self.torrent_links]

    def __str__(self) -> str:
        parts = [self.name]
        if self.version:
            parts.append(f"v{self.version}")
        if self.size:
            parts.append(f"({self.size})")
        return "  ".join(parts)


def link_label(url: str, fallback: str = "Download") -> str:
    """Host name of *url*, or *fallback* when it has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return fallback
    return host or fallback


# ── Query parameters ─────────────────────────────────────────────────────────


class SortKey(str, Enum):
    RECENT = "recent"
    VIEWS = "views"
    DOWNLOADS = "downloads"
    NAME = "name"
    SIZE = "size"


@dataclass(frozen=True)
class QuerySpec:
    """
    Filter and sort settings applied to the catalogue.

    Attributes
    ----------
    search_text : Case-insensitive substring target; empty means no filter.
    genre       : Exact genre tag; empty means no filter.
    sort_key    : Ordering of the resulting view.
    """

    search_text: str = ""
    genre: str = ""
    sort_key: SortKey = SortKey.RECENT


# ── Record validation ────────────────────────────────────────────────────────


def validate_games(records: Iterable[Any], source: str) -> List[Game]:
    """
    Validate *records* one by one, dropping (and logging) those that fail.

    *source* names the origin in the warning, e.g. "catalogue".
    """
    games: List[Game] = []
    for index, record in enumerate(records):
        try:
            games.append(Game.model_validate(record))
        except ValidationError as exc:
            logger.warning(
                "Dropping %s record #%d: %d validation error(s): %s",
                source, index, exc.error_count(), exc.errors()[0]["msg"],
            )
    return games
