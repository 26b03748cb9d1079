"""
services/query_engine.py – Filter and sort the catalogue for display.

apply() is pure: it never mutates its input and returns a new list whose
items are a subset of the input, in a deterministic order.  All sorts are
stable, so ties keep the catalogue's original relative order.
"""

import unicodedata
from datetime import datetime, timezone
from typing import Callable, Dict, List, Sequence, Tuple

from models.game import Game, QuerySpec, SortKey
from services.size_parser import parse_size

# Unparseable dates sort as the earliest possible moment.
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def apply(catalog: Sequence[Game], spec: QuerySpec) -> List[Game]:
    games = list(catalog)

    # Whitespace-only text is no filter; otherwise the text is matched as typed.
    query = spec.search_text.lower()
    if query.strip():
        games = [g for g in games if matches_search(g, query)]

    if spec.genre:
        games = [g for g in games if spec.genre in g.genre]

    key, descending = _SORTS[spec.sort_key]
    return sorted(games, key=key, reverse=descending)


def matches_search(game: Game, query: str) -> bool:
    """*query* must already be lower-cased."""
    return (
        query in game.name.lower()
        or query in game.description.lower()
        or query in game.cracker.lower()
        or any(query in g.lower() for g in game.genre)
    )


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if not value:
        return _EARLIEST
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return _EARLIEST


def collation_key(text: str) -> Tuple[str, str]:
    """
    Locale-style ordering key: accents and case are ignored first, then
    accents break ties ("e" before "é").
    """
    folded = text.casefold()
    decomposed = unicodedata.normalize("NFKD", folded)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base, folded


_SORTS: Dict[SortKey, Tuple[Callable[[Game], object], bool]] = {
    SortKey.RECENT: (lambda g: parse_timestamp(g.date_added), True),
    SortKey.VIEWS: (lambda g: g.views, True),
    SortKey.DOWNLOADS: (lambda g: g.downloads, True),
    SortKey.NAME: (lambda g: collation_key(g.name), False),
    SortKey.SIZE: (lambda g: parse_size(g.size), True),
}
