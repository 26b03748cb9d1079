"""
services/catalog_store.py – Owner of the catalogue and of the current query.

The store keeps the last successfully fetched catalogue and a QuerySpec, and
recomputes the visible view whenever either changes.  Fetches are tagged with
a generation number so that a slow response can never overwrite a newer one.
"""

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from models.game import Game, QuerySpec, SortKey
from services import query_engine
from services.exceptions import RepackBrowserError

logger = logging.getLogger(__name__)

CatalogueFetcher = Callable[[], Awaitable[List[Game]]]


@dataclass(frozen=True)
class CatalogView:
    """The filtered, sorted games currently on display."""

    games: Tuple[Game, ...]
    total: int

    @property
    def shown(self) -> int:
        return len(self.games)

    def count_label(self) -> str:
        if self.shown == self.total:
            return f"({self.shown})"
        return f"({self.shown} / {self.total})"


class CatalogStore:
    def __init__(self) -> None:
        self._catalog: Tuple[Game, ...] = ()
        self._by_id: Dict[str, Game] = {}
        self._genres: List[str] = []
        self._spec = QuerySpec()
        self._view = CatalogView(games=(), total=0)
        self._generation = 0
        self.last_error: Optional[str] = None

    # ── Read access ───────────────────────────────────────────────────────────

    @property
    def catalog(self) -> Tuple[Game, ...]:
        return self._catalog

    @property
    def spec(self) -> QuerySpec:
        return self._spec

    @property
    def view(self) -> CatalogView:
        return self._view

    def available_genres(self) -> List[str]:
        return list(self._genres)

    def find(self, game_id: str) -> Optional[Game]:
        return self._by_id.get(game_id)

    # ── Catalogue replacement ─────────────────────────────────────────────────

    def load(self, games: Sequence[Game]) -> CatalogView:
        """Replace the catalogue wholesale and recompute genres and view."""
        self._catalog = tuple(games)
        self._by_id = {g.id: g for g in self._catalog if g.id}
        self._genres = sorted({tag for g in self._catalog for tag in g.genre})
        for game in self._catalog:
            missing = game.missing_fields
            if missing:
                logger.warning(
                    "Catalogue record '%s' is missing %s; treating as empty.",
                    game.name or game.id or "?", ", ".join(missing),
                )
        return self.refresh()

    async def reload(self, fetch: CatalogueFetcher) -> Optional[CatalogView]:
        """
        Fetch a fresh catalogue and load it.

        Returns the new view, or None when the fetch failed or was superseded
        by a later reload.  On failure the previous view is kept and
        last_error holds a message for the user.
        """
        self._generation += 1
        generation = self._generation
        self.last_error = None
        try:
            games = await fetch()
        except RepackBrowserError as exc:
            if generation != self._generation:
                logger.debug("Ignoring failure of superseded catalogue fetch #%d", generation)
                return None
            logger.error("Catalogue fetch failed: %s", exc)
            self.last_error = f"Could not load games: {exc}"
            return None

        if generation != self._generation:
            logger.debug("Ignoring superseded catalogue fetch #%d", generation)
            return None
        self.last_error = None
        return self.load(games)

    # ── Query mutation ────────────────────────────────────────────────────────

    def set_search(self, text: str) -> CatalogView:
        self._spec = replace(self._spec, search_text=text)
        return self.refresh()

    def set_genre(self, genre: str) -> CatalogView:
        self._spec = replace(self._spec, genre=genre or "")
        return self.refresh()

    def set_sort(self, key: SortKey) -> CatalogView:
        self._spec = replace(self._spec, sort_key=SortKey(key))
        return self.refresh()

    def reset_filters(self) -> CatalogView:
        self._spec = QuerySpec()
        return self.refresh()

    def refresh(self) -> CatalogView:
        self._view = CatalogView(
            games=tuple(query_engine.apply(self._catalog, self._spec)),
            total=len(self._catalog),
        )
        return self._view
