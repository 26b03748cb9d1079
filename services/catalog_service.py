import asyncio
import logging
import os
from typing import Any, List, Optional

import httpx

from models.game import Game, validate_games
from services.exceptions import (
    BadStatusError,
    MalformedResponseError,
    NetworkError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

# Catalogue endpoint.  The public API does not send CORS headers, hence the proxy.
CATALOGUE_URL: str = os.environ.get(
    "REPACK_BROWSER_CATALOGUE_URL",
    "https://corsproxy.io/?url=https://fluxyrepacks.xyz/api/games",
)

# Upper bound (seconds) on one whole request, body included.
HTTP_TIMEOUT: float = float(os.environ.get("REPACK_BROWSER_TIMEOUT", "15"))

REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json",
}

# ── Public API ───────────────────────────────────────────────────────────────


async def fetch_catalogue(
    client: Optional[httpx.AsyncClient] = None,
    *,
    url: str = CATALOGUE_URL,
    timeout: float = HTTP_TIMEOUT,
) -> List[Game]:
    """
    Download and validate the full game list.

    Parameters
    ----------
    client  : Shared AsyncClient; a short-lived one is created when omitted.
    url     : Catalogue endpoint.
    timeout : Limit on the whole request; httpx's own timeout only bounds
              each connect/read phase.

    Returns
    -------
    List[Game]
        Valid records, in server order.  May be empty.

    Raises
    ------
    NetworkError / RequestTimeoutError
        On transport failure.
    BadStatusError
        On a non-2xx answer.
    MalformedResponseError
        When the envelope is not ``{success: true, data: {games: [...]}}``.
    """
    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own:
            return await fetch_catalogue(own, url=url, timeout=timeout)

    try:
        response = await asyncio.wait_for(client.get(url, headers=REQUEST_HEADERS), timeout)
        response.raise_for_status()
    except asyncio.TimeoutError as exc:
        raise RequestTimeoutError(f"Catalogue request took longer than {timeout:g}s.") from exc
    except httpx.HTTPStatusError as exc:
        raise BadStatusError(exc.response.status_code, url) from exc
    except httpx.TimeoutException as exc:
        raise RequestTimeoutError(f"Catalogue request timed out: {exc}") from exc
    except httpx.RequestError as exc:
        raise NetworkError(f"Network error while fetching catalogue: {exc}") from exc

    try:
        payload = response.json()
    except ValueError as exc:
        raise MalformedResponseError("Catalogue response is not valid JSON.") from exc

    games = parse_catalogue(payload)
    logger.info("Fetched %d games from %s", len(games), url)
    return games


def parse_catalogue(payload: Any) -> List[Game]:
    """
    Validate the envelope strictly and each record leniently.

    Records that fail validation are dropped with a warning rather than
    failing the whole catalogue.
    """
    if not isinstance(payload, dict) or payload.get("success") is not True:
        raise MalformedResponseError("Invalid catalogue format: missing success flag.")
    data = payload.get("data")
    records = data.get("games") if isinstance(data, dict) else None
    if not isinstance(records, list):
        raise MalformedResponseError("Invalid catalogue format: missing data.games list.")

    return validate_games(records, "catalogue")
