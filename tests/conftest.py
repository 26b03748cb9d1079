import asyncio
from typing import Any, Dict, List, Tuple

import pytest

from models.agent import (
    AckResponse,
    AgentOption,
    GenresResponse,
    OptionsResponse,
    OptionType,
    ResultsResponse,
)
from models.game import Game


def make_game(name: str, **fields: Any) -> Game:
    record = {
        "id": name.lower(),
        "name": name,
        "description": f"{name} description",
        "cracker": "FitGirl",
        "genre": ["Action"],
        "views": 0,
        "downloads": 0,
        "size": "1 GB",
        "version": "1.0",
        "dateAdded": "2024-01-01T00:00:00Z",
    }
    record.update(fields)
    return Game.model_validate(record)


@pytest.fixture
def sample_catalog() -> List[Game]:
    return [
        make_game("Alpha", genre=["RPG"], views=10, downloads=5, size="12 GB",
                  dateAdded="2024-01-01"),
        make_game("Beta", genre=["Action"], views=50, downloads=5, size="500 MB",
                  dateAdded="2024-06-01"),
        make_game("Gamma", genre=["Action", "RPG"], views=10, downloads=90, size="n/a",
                  dateAdded="not a date", cracker="DODI"),
    ]


MENU = OptionsResponse(
    greeting="Hello! What can I do for you?",
    options=(
        AgentOption(id="search", label="Search a game", type=OptionType.SEARCH),
        AgentOption(id="genres", label="Browse by genre", type=OptionType.GENRE),
        AgentOption(id="most-downloaded", label="Most downloaded", type=OptionType.ACTION),
        AgentOption(id="report", label="Report a broken link", type=OptionType.REPORT),
        AgentOption(id="suggest", label="Suggest a game", type=OptionType.SUGGEST),
    ),
)


class FakeAgentBackend:
    """
    In-memory stand-in for AgentClient.

    Records every call.  Set `fail_with[name]` to make a call raise, or
    `gates[name]` to hold a call until the event is set.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.fail_with: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.options = MENU
        self.genres = GenresResponse(success=True, message="Pick a genre", genres=("Action", "RPG"))
        self.results = ResultsResponse(
            success=True, message="Here is what I found", results=(make_game("Alpha"),)
        )
        self.ack = AckResponse(success=True, message="Thanks, we will look into it.")

    def called(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    async def _answer(self, name: str, args: Tuple[Any, ...], value: Any) -> Any:
        self.calls.append((name, args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.fail_with:
            raise self.fail_with[name]
        return value

    async def get_options(self, lang):
        return await self._answer("get_options", (lang,), self.options)

    async def get_genres(self, lang):
        return await self._answer("get_genres", (lang,), self.genres)

    async def get_leaderboard(self, board, lang):
        return await self._answer("get_leaderboard", (board, lang), self.results)

    async def search(self, query, lang):
        return await self._answer("search", (query, lang), self.results)

    async def games_by_genre(self, genre, lang):
        return await self._answer("games_by_genre", (genre, lang), self.results)

    async def report(self, request):
        return await self._answer("report", (request,), self.ack)

    async def suggest(self, request):
        return await self._answer("suggest", (request,), self.ack)


@pytest.fixture
def backend() -> FakeAgentBackend:
    return FakeAgentBackend()
