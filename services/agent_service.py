"""
services/agent_service.py – Async client for the conversational agent API.

One method per endpoint.  Every response is validated against its schema in
models/agent.py; a schema violation or ``success=false`` becomes a
MalformedResponseError, transport problems become NetworkError subclasses.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from models.agent import (
    AckResponse,
    GenresResponse,
    Language,
    Leaderboard,
    OptionsResponse,
    ReportRequest,
    ResultsResponse,
    SuggestRequest,
)
from services.exceptions import (
    BadStatusError,
    MalformedResponseError,
    NetworkError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

AGENT_BASE_URL: str = os.environ.get(
    "REPACK_BROWSER_AGENT_URL", "https://fluxyrepacks.xyz/api"
)

# Upper bound (seconds) on one whole request, body included.
HTTP_TIMEOUT: float = float(os.environ.get("REPACK_BROWSER_TIMEOUT", "15"))

_Schema = TypeVar("_Schema", bound=BaseModel)


class AgentClient:
    """
    Thin, stateless wrapper over the Agent Service.

    Pass an existing AsyncClient to share a connection pool (or to inject a
    mock transport in tests); otherwise one is created and owned here.
    """

    def __init__(
        self,
        base_url: str = AGENT_BASE_URL,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── Endpoints ────────────────────────────────────────────────────────────

    async def get_options(self, lang: Language) -> OptionsResponse:
        return await self._request(
            "GET", "/agent/options", OptionsResponse, params={"lang": lang.value}
        )

    async def get_genres(self, lang: Language) -> GenresResponse:
        return await self._request(
            "GET", "/agent/genres", GenresResponse, params={"lang": lang.value}
        )

    async def get_leaderboard(self, board: Leaderboard, lang: Language) -> ResultsResponse:
        return await self._request(
            "GET", f"/agent/{board.value}", ResultsResponse, params={"lang": lang.value}
        )

    async def search(self, query: str, lang: Language) -> ResultsResponse:
        return await self._request(
            "POST", "/agent/search", ResultsResponse,
            json={"query": query, "lang": lang.value},
        )

    async def games_by_genre(self, genre: str, lang: Language) -> ResultsResponse:
        return await self._request(
            "POST", "/agent/genre", ResultsResponse,
            json={"genre": genre, "lang": lang.value},
        )

    async def report(self, request: ReportRequest) -> AckResponse:
        return await self._request("POST", "/agent/report", AckResponse, json=request.to_json())

    async def suggest(self, request: SuggestRequest) -> AckResponse:
        return await self._request("POST", "/agent/suggest", AckResponse, json=request.to_json())

    # ── Private helpers ──────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        schema: Type[_Schema],
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> _Schema:
        url = self._base_url + path
        logger.debug("%s %s", method, url)
        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, params=params, json=json), self._timeout
            )
            response.raise_for_status()
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                f"Agent request took longer than {self._timeout:g}s: {path}"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise BadStatusError(exc.response.status_code, url) from exc
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"Agent request timed out: {path}") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"Network error calling {path}: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{path} returned invalid JSON.") from exc

        try:
            parsed = schema.model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError(
                f"{path} returned an unexpected shape ({exc.error_count()} error(s))."
            ) from exc

        if getattr(parsed, "success", True) is False:
            message = getattr(parsed, "message", "") or None
            raise MalformedResponseError(f"{path} reported failure.", server_message=message)
        return parsed
