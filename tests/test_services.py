import asyncio
import json

import httpx
import pytest

from models.agent import Language, Leaderboard, OptionType, ReportRequest, SuggestRequest
from services import catalog_service
from services.agent_service import AgentClient
from services.exceptions import (
    BadStatusError,
    ErrorKind,
    MalformedResponseError,
    NetworkError,
    RequestTimeoutError,
)

GAME = {
    "_id": "65a1",
    "name": "Alpha",
    "description": "A game",
    "cracker": "FitGirl",
    "genre": ["RPG"],
    "views": 10,
    "downloads": 2,
    "size": "12 GB",
    "version": "1.2",
    "dateAdded": "2024-01-01T00:00:00.000Z",
    "author": {"username": "admin", "role": "owner"},
}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Catalogue service ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fetch_catalogue_parses_games() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["accept"] = request.headers["accept"]
        return httpx.Response(200, json={"success": True, "data": {"games": [GAME]}})

    async with _client(handler) as client:
        games = await catalog_service.fetch_catalogue(client, url="https://catalogue.test/games")

    assert seen["accept"] == "application/json"
    assert len(games) == 1
    assert games[0].id == "65a1"
    assert games[0].author.username == "admin"


@pytest.mark.asyncio
async def test_fetch_catalogue_drops_invalid_records(caplog) -> None:
    payload = {"success": True, "data": {"games": [GAME, "junk", {**GAME, "views": -3}]}}

    async with _client(lambda r: httpx.Response(200, json=payload)) as client:
        games = await catalog_service.fetch_catalogue(client, url="https://catalogue.test/games")

    assert [g.name for g in games] == ["Alpha"]
    assert "Dropping catalogue record #1" in caplog.text
    assert "Dropping catalogue record #2" in caplog.text


@pytest.mark.parametrize(
    "payload",
    [
        {"success": False, "data": {"games": []}},
        {"success": True, "data": {}},
        {"success": True, "data": {"games": {"not": "a list"}}},
        ["not", "an", "object"],
    ],
)
def test_parse_catalogue_rejects_bad_envelopes(payload) -> None:
    with pytest.raises(MalformedResponseError):
        catalog_service.parse_catalogue(payload)


@pytest.mark.asyncio
async def test_fetch_catalogue_bad_status() -> None:
    async with _client(lambda r: httpx.Response(503)) as client:
        with pytest.raises(BadStatusError) as info:
            await catalog_service.fetch_catalogue(client, url="https://catalogue.test/games")
    assert info.value.status_code == 503
    assert info.value.kind is ErrorKind.BAD_STATUS


@pytest.mark.asyncio
async def test_fetch_catalogue_invalid_json() -> None:
    async with _client(lambda r: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(MalformedResponseError):
            await catalog_service.fetch_catalogue(client, url="https://catalogue.test/games")


@pytest.mark.asyncio
async def test_fetch_catalogue_transport_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("stalled", request=request)

    async with _client(refuse) as client:
        with pytest.raises(NetworkError) as info:
            await catalog_service.fetch_catalogue(client, url="https://catalogue.test/games")
    assert not isinstance(info.value, RequestTimeoutError)

    async with _client(stall) as client:
        with pytest.raises(RequestTimeoutError):
            await catalog_service.fetch_catalogue(client, url="https://catalogue.test/games")



def test_parse_catalogue_keeps_records_with_null_fields() -> None:
    payload = {"success": True, "data": {"games": [
        {**GAME, "description": None},
        {**GAME, "_id": "65a2", "name": "Beta", "genre": None},
    ]}}

    games = catalog_service.parse_catalogue(payload)

    assert [g.name for g in games] == ["Alpha", "Beta"]
    assert games[0].description == ""
    assert games[1].missing_fields == ["genre"]


@pytest.mark.asyncio
async def test_fetch_catalogue_bounds_the_whole_request() -> None:
    async def trickle(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={"success": True, "data": {"games": []}})

    async with _client(trickle) as client:
        with pytest.raises(RequestTimeoutError):
            await catalog_service.fetch_catalogue(
                client, url="https://catalogue.test/games", timeout=0.05
            )


# ── Agent service ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_options_sends_language() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["lang"] = request.url.params["lang"]
        return httpx.Response(200, json={
            "greeting": "Bonjour !",
            "options": [{"id": "search", "label": "Rechercher", "type": "search"}],
        })

    agent = AgentClient("https://agent.test/api/", client=_client(handler))
    response = await agent.get_options(Language.FR)

    assert seen == {"path": "/api/agent/options", "lang": "fr"}
    assert response.greeting == "Bonjour !"
    assert response.options[0].type is OptionType.SEARCH


@pytest.mark.asyncio
async def test_leaderboard_uses_board_path() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        return httpx.Response(200, json={"success": True, "message": "Top", "results": [GAME]})

    agent = AgentClient("https://agent.test/api", client=_client(handler))
    response = await agent.get_leaderboard(Leaderboard.MOST_VIEWED, Language.EN)

    assert seen["path"] == "/api/agent/most-viewed"
    assert response.results[0].name == "Alpha"


@pytest.mark.asyncio
async def test_search_and_genre_post_bodies() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"success": True, "message": "", "results": []})

    agent = AgentClient("https://agent.test", client=_client(handler))
    await agent.search("zelda", Language.EN)
    await agent.games_by_genre("RPG", Language.FR)

    assert bodies == [
        ("/agent/search", {"query": "zelda", "lang": "en"}),
        ("/agent/genre", {"genre": "RPG", "lang": "fr"}),
    ]


@pytest.mark.asyncio
async def test_form_bodies_are_camel_case_without_empty_fields() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "message": "Merci"})

    agent = AgentClient("https://agent.test", client=_client(handler))
    await agent.report(ReportRequest(game_name="Alpha", lang=Language.EN, link_url="https://x.test/a"))
    ack = await agent.suggest(SuggestRequest(game_name="Beta", lang=Language.FR))

    assert bodies == [
        {"gameName": "Alpha", "lang": "en", "linkUrl": "https://x.test/a"},
        {"gameName": "Beta", "lang": "fr"},
    ]
    assert ack.message == "Merci"


@pytest.mark.asyncio
async def test_success_false_keeps_server_message() -> None:
    handler = lambda r: httpx.Response(200, json={"success": False, "message": "Aucun résultat", "results": []})
    agent = AgentClient("https://agent.test", client=_client(handler))

    with pytest.raises(MalformedResponseError) as info:
        await agent.search("nothing", Language.FR)
    assert info.value.server_message == "Aucun résultat"


@pytest.mark.asyncio
async def test_schema_violation_is_malformed() -> None:
    handler = lambda r: httpx.Response(200, json={"greeting": "Hi", "options": [{"id": "x", "label": "X", "type": "dance"}]})
    agent = AgentClient("https://agent.test", client=_client(handler))

    with pytest.raises(MalformedResponseError) as info:
        await agent.get_options(Language.EN)
    assert info.value.server_message is None


@pytest.mark.asyncio
async def test_agent_bad_status_and_timeout() -> None:
    agent = AgentClient("https://agent.test", client=_client(lambda r: httpx.Response(404)))
    with pytest.raises(BadStatusError):
        await agent.get_genres(Language.EN)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    agent = AgentClient("https://agent.test", client=_client(stall))
    with pytest.raises(RequestTimeoutError):
        await agent.get_genres(Language.EN)


@pytest.mark.asyncio
async def test_invalid_results_are_dropped_individually(caplog) -> None:
    payload = {
        "success": True,
        "message": "Found 2",
        "results": [GAME, {**GAME, "name": "Broken", "views": -1}, {**GAME, "description": None}],
    }
    agent = AgentClient("https://agent.test", client=_client(lambda r: httpx.Response(200, json=payload)))

    response = await agent.search("alpha", Language.EN)

    assert [g.name for g in response.results] == ["Alpha", "Alpha"]
    assert response.results[1].description == ""
    assert "Dropping agent result record #1" in caplog.text


@pytest.mark.asyncio
async def test_agent_request_is_bounded() -> None:
    async def trickle(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={"greeting": "Hi", "options": []})

    agent = AgentClient("https://agent.test", client=_client(trickle), timeout=0.05)

    with pytest.raises(RequestTimeoutError) as info:
        await agent.get_options(Language.EN)
    assert info.value.kind is ErrorKind.TIMEOUT
