import asyncio

import pytest

from conftest import make_game
from models.game import Game, SortKey
from services.catalog_store import CatalogStore, CatalogView
from services.exceptions import NetworkError


def test_load_derives_sorted_genres_from_full_catalog(sample_catalog) -> None:
    store = CatalogStore()
    store.load(sample_catalog)
    store.set_search("beta")

    assert store.view.shown == 1
    assert store.available_genres() == ["Action", "RPG"]


def test_genres_follow_load_not_refresh(sample_catalog) -> None:
    store = CatalogStore()
    store.load(sample_catalog[:1])
    store.set_genre("RPG")
    assert store.available_genres() == ["RPG"]

    store.load(sample_catalog)
    assert store.available_genres() == ["Action", "RPG"]


def test_each_mutation_refreshes_the_view(sample_catalog) -> None:
    store = CatalogStore()
    store.load(sample_catalog)

    view = store.set_sort(SortKey.VIEWS)
    assert [g.name for g in view.games] == ["Beta", "Alpha", "Gamma"]

    view = store.set_genre("RPG")
    assert [g.name for g in view.games] == ["Alpha", "Gamma"]

    view = store.set_search("gam")
    assert [g.name for g in view.games] == ["Gamma"]
    assert (view.shown, view.total) == (1, 3)
    assert store.view is view


def test_reset_filters_restores_full_catalog_in_recent_order(sample_catalog) -> None:
    store = CatalogStore()
    store.load(sample_catalog)
    store.set_search("zzz")
    store.set_genre("RPG")
    store.set_sort(SortKey.NAME)

    store.reset_filters()
    view = store.refresh()

    assert store.spec.sort_key is SortKey.RECENT
    assert [g.name for g in view.games] == ["Beta", "Alpha", "Gamma"]


def test_count_label() -> None:
    assert CatalogView(games=(), total=0).count_label() == "(0)"
    game = make_game("Solo")
    assert CatalogView(games=(game,), total=1).count_label() == "(1)"
    assert CatalogView(games=(game,), total=4).count_label() == "(1 / 4)"


def test_load_replaces_catalog_wholesale(sample_catalog) -> None:
    store = CatalogStore()
    store.load(sample_catalog)
    store.load([make_game("Delta")])

    assert [g.name for g in store.catalog] == ["Delta"]
    assert store.find("alpha") is None
    assert store.find("delta").name == "Delta"


def test_load_flags_partial_records(caplog) -> None:
    partial = Game.model_validate({"name": "Partial"})
    store = CatalogStore()
    with caplog.at_level("WARNING"):
        view = store.load([partial])
    assert view.shown == 1
    assert "Partial" in caplog.text
    assert "date_added" in caplog.text


@pytest.mark.asyncio
async def test_reload_applies_fetched_games(sample_catalog) -> None:
    store = CatalogStore()

    async def fetch():
        return sample_catalog

    view = await store.reload(fetch)

    assert view is not None and view.total == 3
    assert store.last_error is None


@pytest.mark.asyncio
async def test_reload_failure_keeps_previous_view(sample_catalog) -> None:
    store = CatalogStore()
    store.load(sample_catalog)
    before = store.view

    async def fetch():
        raise NetworkError("connection refused")

    assert await store.reload(fetch) is None
    assert store.view is before
    assert "connection refused" in store.last_error

    async def fetch_ok():
        return sample_catalog[:1]

    await store.reload(fetch_ok)
    assert store.last_error is None


@pytest.mark.asyncio
async def test_slow_reload_cannot_overwrite_newer_one(sample_catalog) -> None:
    store = CatalogStore()
    release_first = asyncio.Event()

    async def slow_fetch():
        await release_first.wait()
        return [make_game("Stale")]

    async def fast_fetch():
        return sample_catalog

    first = asyncio.create_task(store.reload(slow_fetch))
    await asyncio.sleep(0)
    assert await store.reload(fast_fetch) is not None

    release_first.set()
    assert await first is None
    assert [g.name for g in store.catalog] == ["Alpha", "Beta", "Gamma"]


@pytest.mark.asyncio
async def test_superseded_failure_is_not_reported(sample_catalog) -> None:
    store = CatalogStore()
    release_first = asyncio.Event()

    async def failing_fetch():
        await release_first.wait()
        raise NetworkError("late failure")

    async def fetch():
        return sample_catalog

    first = asyncio.create_task(store.reload(failing_fetch))
    await asyncio.sleep(0)
    await store.reload(fetch)
    release_first.set()

    assert await first is None
    assert store.last_error is None


@pytest.mark.asyncio
async def test_new_reload_clears_previous_error(sample_catalog) -> None:
    store = CatalogStore()

    async def fetch_fail():
        raise NetworkError("offline")

    await store.reload(fetch_fail)
    assert store.last_error is not None

    release = asyncio.Event()

    async def slow_fetch():
        await release.wait()
        return sample_catalog

    pending = asyncio.create_task(store.reload(slow_fetch))
    await asyncio.sleep(0)
    assert store.last_error is None

    release.set()
    assert (await pending).total == 3
