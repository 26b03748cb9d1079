"""
services/agent_session.py – State machine behind the conversational agent.

Phases
------
  CLOSED ──open──► LANGUAGE_SELECT ──choose_language──► MENU_ROOT
  CLOSED ──open (language known)──────────────────────► MENU_ROOT

  MENU_ROOT ──select_option──► AWAITING_SEARCH_TEXT | SHOWING_RESULTS
                               | FORM_REPORT | FORM_SUGGEST | MENU_ROOT (genres)
  MENU_ROOT ──choose_genre──► SHOWING_RESULTS
  AWAITING_SEARCH_TEXT ──submit_text──► SHOWING_RESULTS
  FORM_* ──submit_form──► FORM_* (success message, back offered)
  any open phase ──back──► MENU_ROOT      any phase ──close──► CLOSED

Every event bumps a generation counter.  A network response is applied only
if the generation it captured is still current, so answers that arrive after
back() or close() are dropped instead of clobbering the newer context.

Each event returns an AgentReply for the UI, or None when its response was
dropped as stale.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from models.agent import (
    AckResponse,
    AgentMessage,
    AgentOption,
    AgentPhase,
    AgentReply,
    AgentState,
    FormKind,
    GenresResponse,
    Language,
    Leaderboard,
    MessageRole,
    OptionsResponse,
    OptionType,
    ReportRequest,
    ResultsResponse,
    SuggestRequest,
)
from models.game import Game
from services.catalog_store import CatalogStore
from services.exceptions import (
    FormValidationError,
    InvalidTransitionError,
    LookupMissError,
    MalformedResponseError,
    RepackBrowserError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

# Shown before any language is known, so it carries both.
LANGUAGE_PROMPT: str = "Choose your language / Choisissez votre langue"

_TEXTS: Dict[Language, Dict[str, str]] = {
    Language.EN: {
        "search_prompt": "Which game are you looking for?",
        "search_placeholder": "Type a game name…",
        "game_name_required": "The game name is required.",
        "request_failed": "The assistant could not be reached. Go back to the menu and try again.",
        "timed_out": "The assistant took too long to answer. Go back to the menu and try again.",
    },
    Language.FR: {
        "search_prompt": "Quel jeu recherchez-vous ?",
        "search_placeholder": "Tapez le nom d'un jeu…",
        "game_name_required": "Le nom du jeu est obligatoire.",
        "request_failed": "Impossible de joindre l'assistant. Revenez au menu et réessayez.",
        "timed_out": "L'assistant a mis trop de temps à répondre. Revenez au menu et réessayez.",
    },
}

_BACK_PHASES: Tuple[AgentPhase, ...] = (
    AgentPhase.MENU_ROOT,
    AgentPhase.AWAITING_SEARCH_TEXT,
    AgentPhase.SHOWING_RESULTS,
    AgentPhase.FORM_REPORT,
    AgentPhase.FORM_SUGGEST,
)
_FORM_PHASES: Dict[AgentPhase, FormKind] = {
    AgentPhase.FORM_REPORT: FormKind.REPORT,
    AgentPhase.FORM_SUGGEST: FormKind.SUGGEST,
}


def localized(lang: Optional[Language], key: str) -> str:
    return _TEXTS[lang or Language.EN][key]


class AgentBackend(Protocol):
    """What the session needs from the Agent Service (see AgentClient)."""

    async def get_options(self, lang: Language) -> OptionsResponse: ...

    async def get_genres(self, lang: Language) -> GenresResponse: ...

    async def get_leaderboard(self, board: Leaderboard, lang: Language) -> ResultsResponse: ...

    async def search(self, query: str, lang: Language) -> ResultsResponse: ...

    async def games_by_genre(self, genre: str, lang: Language) -> ResultsResponse: ...

    async def report(self, request: ReportRequest) -> AckResponse: ...

    async def suggest(self, request: SuggestRequest) -> AckResponse: ...


# ── Form validation ──────────────────────────────────────────────────────────


def _required(fields: Mapping[str, str], key: str, lang: Language) -> str:
    value = (fields.get(key) or "").strip()
    if not value:
        raise FormValidationError(key, localized(lang, "game_name_required"))
    return value


def _optional(fields: Mapping[str, str], key: str) -> Optional[str]:
    return (fields.get(key) or "").strip() or None


def build_report_request(fields: Mapping[str, str], lang: Language) -> ReportRequest:
    """Raises FormValidationError when gameName is blank."""
    return ReportRequest(
        game_name=_required(fields, "gameName", lang),
        lang=lang,
        game_id=_optional(fields, "gameId"),
        link_url=_optional(fields, "linkUrl"),
        user_comment=_optional(fields, "userComment"),
    )


def build_suggest_request(fields: Mapping[str, str], lang: Language) -> SuggestRequest:
    """Raises FormValidationError when gameName is blank."""
    return SuggestRequest(
        game_name=_required(fields, "gameName", lang),
        lang=lang,
        game_link=_optional(fields, "gameLink"),
        description=_optional(fields, "description"),
    )


# ── Session ──────────────────────────────────────────────────────────────────


class AgentSession:
    def __init__(self, backend: AgentBackend, catalog: Optional[CatalogStore] = None) -> None:
        self._backend = backend
        self._catalog = catalog
        self._state = AgentState()
        self._phase = AgentPhase.CLOSED
        self._generation = 0
        self._options: Tuple[AgentOption, ...] = ()
        self._genres: Tuple[str, ...] = ()
        self._option_handlers: Dict[OptionType, Callable[[AgentOption], Awaitable[Optional[AgentReply]]]] = {
            OptionType.SEARCH: self._prompt_search,
            OptionType.GENRE: self._list_genres,
            OptionType.ACTION: self._show_leaderboard,
            OptionType.REPORT: self._open_report_form,
            OptionType.SUGGEST: self._open_suggest_form,
        }

    # ── Read access ───────────────────────────────────────────────────────────

    @property
    def phase(self) -> AgentPhase:
        return self._phase

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def language(self) -> Optional[Language]:
        return self._state.language

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def options(self) -> Tuple[AgentOption, ...]:
        return self._options

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def open(self) -> Optional[AgentReply]:
        self._require("open", AgentPhase.CLOSED)
        if self._state.language is None:
            self._enter(AgentPhase.LANGUAGE_SELECT)
            return AgentReply(
                phase=self._phase,
                messages=[AgentMessage(MessageRole.AGENT, LANGUAGE_PROMPT)],
            )
        return await self._enter_menu()

    def close(self) -> AgentReply:
        """Leave the dialogue; the chosen language is kept for the next open()."""
        if self._phase is not AgentPhase.CLOSED:
            self._enter(AgentPhase.CLOSED)
            self._state.reset_transient()
            self._options = ()
            self._genres = ()
        return AgentReply(phase=self._phase)

    async def choose_language(self, lang: Language) -> Optional[AgentReply]:
        self._require("choose_language", AgentPhase.LANGUAGE_SELECT)
        self._state.language = Language(lang)
        logger.info("Agent language set to %s", self._state.language.value)
        return await self._enter_menu()

    async def back(self) -> Optional[AgentReply]:
        self._require("back", *_BACK_PHASES)
        return await self._enter_menu()

    # ── Menu ──────────────────────────────────────────────────────────────────

    async def select_option(self, option_id: str) -> Optional[AgentReply]:
        self._require("select_option", AgentPhase.MENU_ROOT)
        option = next((o for o in self._options if o.id == option_id), None)
        if option is None:
            raise InvalidTransitionError(f"Unknown menu option '{option_id}'.")
        self._state.current_context = option.id
        return await self._option_handlers[option.type](option)

    async def choose_genre(self, genre: str) -> Optional[AgentReply]:
        self._require("choose_genre", AgentPhase.MENU_ROOT)
        if genre not in self._genres:
            raise InvalidTransitionError(f"Genre '{genre}' was not offered.")
        generation = self._enter(AgentPhase.SHOWING_RESULTS)
        lang = self._lang()
        return await self._fetch_results(
            generation,
            lambda: self._backend.games_by_genre(genre, lang),
            lead=[AgentMessage(MessageRole.USER, genre)],
        )

    async def submit_text(self, query: str) -> Optional[AgentReply]:
        self._require("submit_text", AgentPhase.AWAITING_SEARCH_TEXT)
        text = query.strip()
        if not text:
            return self._search_prompt_reply()
        generation = self._enter(AgentPhase.SHOWING_RESULTS)
        lang = self._lang()
        return await self._fetch_results(
            generation,
            lambda: self._backend.search(text, lang),
            lead=[AgentMessage(MessageRole.USER, text)],
        )

    # ── Forms ─────────────────────────────────────────────────────────────────

    async def submit_form(self, fields: Mapping[str, str]) -> Optional[AgentReply]:
        self._require("submit_form", *_FORM_PHASES)
        kind = _FORM_PHASES[self._phase]
        lang = self._lang()
        self._state.pending_form = {k: v for k, v in fields.items() if isinstance(v, str)}

        try:
            if kind is FormKind.REPORT:
                request = build_report_request(self._state.pending_form, lang)
            else:
                request = build_suggest_request(self._state.pending_form, lang)
        except FormValidationError as exc:
            logger.info("Rejected %s form: %s is missing", kind.value, exc.field)
            return AgentReply(
                phase=self._phase,
                messages=[AgentMessage(MessageRole.ERROR, str(exc))],
                form=kind,
                offer_back=True,
                error=exc.kind,
            )

        generation = self._bump()
        try:
            if kind is FormKind.REPORT:
                ack = await self._backend.report(request)
            else:
                ack = await self._backend.suggest(request)
        except RepackBrowserError as exc:
            return self._failure(generation, exc, form=kind)

        if not self._is_current(generation):
            return self._stale(generation)
        self._state.pending_form = None
        return AgentReply(
            phase=self._phase,
            messages=[AgentMessage(MessageRole.SUCCESS, ack.message)],
            offer_back=True,
        )

    # ── Results ───────────────────────────────────────────────────────────────

    def select_result(self, game: Game) -> Optional[Game]:
        """
        Resolve an agent result against the authoritative catalogue.

        Returns None (and logs) when the game is not in the current catalogue.
        """
        try:
            return self._resolve(game)
        except LookupMissError as exc:
            logger.info("%s", exc)
            return None

    def _resolve(self, game: Game) -> Game:
        match = self._catalog.find(game.id) if self._catalog and game.id else None
        if match is None:
            raise LookupMissError(f"Agent result '{game.name}' ({game.id}) is not in the catalogue.")
        return match

    # ── Option handlers ───────────────────────────────────────────────────────

    async def _prompt_search(self, option: AgentOption) -> Optional[AgentReply]:
        self._enter(AgentPhase.AWAITING_SEARCH_TEXT)
        return self._search_prompt_reply()

    async def _list_genres(self, option: AgentOption) -> Optional[AgentReply]:
        generation = self._bump()
        try:
            response = await self._backend.get_genres(self._lang())
        except RepackBrowserError as exc:
            return self._failure(generation, exc)
        if not self._is_current(generation):
            return self._stale(generation)
        self._genres = response.genres
        messages = [AgentMessage(MessageRole.AGENT, response.message)] if response.message else []
        return AgentReply(
            phase=self._phase,
            messages=messages,
            options=self._options,
            genres=self._genres,
        )

    async def _show_leaderboard(self, option: AgentOption) -> Optional[AgentReply]:
        try:
            board = Leaderboard(option.id)
        except ValueError:
            exc = MalformedResponseError(f"Menu option '{option.id}' names no known list.")
            return self._failure(self._generation, exc)
        generation = self._enter(AgentPhase.SHOWING_RESULTS)
        lang = self._lang()
        return await self._fetch_results(
            generation, lambda: self._backend.get_leaderboard(board, lang)
        )

    async def _open_report_form(self, option: AgentOption) -> Optional[AgentReply]:
        return self._open_form(AgentPhase.FORM_REPORT, FormKind.REPORT)

    async def _open_suggest_form(self, option: AgentOption) -> Optional[AgentReply]:
        return self._open_form(AgentPhase.FORM_SUGGEST, FormKind.SUGGEST)

    # ── Private helpers ──────────────────────────────────────────────────────

    def _open_form(self, phase: AgentPhase, kind: FormKind) -> AgentReply:
        self._enter(phase)
        self._state.pending_form = {}
        return AgentReply(phase=phase, form=kind, offer_back=True)

    def _search_prompt_reply(self) -> AgentReply:
        lang = self._lang()
        return AgentReply(
            phase=self._phase,
            messages=[AgentMessage(MessageRole.AGENT, localized(lang, "search_prompt"))],
            prompt=localized(lang, "search_prompt"),
            placeholder=localized(lang, "search_placeholder"),
            offer_back=True,
        )

    async def _enter_menu(self) -> Optional[AgentReply]:
        generation = self._enter(AgentPhase.MENU_ROOT)
        self._state.reset_transient()
        self._options = ()
        self._genres = ()
        try:
            response = await self._backend.get_options(self._lang())
        except RepackBrowserError as exc:
            return self._failure(generation, exc)
        if not self._is_current(generation):
            return self._stale(generation)
        self._options = response.options
        return AgentReply(
            phase=self._phase,
            messages=[AgentMessage(MessageRole.AGENT, response.greeting)],
            options=self._options,
        )

    async def _fetch_results(
        self,
        generation: int,
        call: Callable[[], Awaitable[ResultsResponse]],
        *,
        lead: Optional[List[AgentMessage]] = None,
    ) -> Optional[AgentReply]:
        messages = list(lead or [])
        try:
            response = await call()
        except RepackBrowserError as exc:
            return self._failure(generation, exc, lead=messages)
        if not self._is_current(generation):
            return self._stale(generation)
        if response.message:
            messages.append(AgentMessage(MessageRole.AGENT, response.message))
        return AgentReply(
            phase=self._phase,
            messages=messages,
            results=response.results,
            offer_back=True,
        )

    def _failure(
        self,
        generation: int,
        exc: RepackBrowserError,
        *,
        form: Optional[FormKind] = None,
        lead: Optional[List[AgentMessage]] = None,
    ) -> Optional[AgentReply]:
        if not self._is_current(generation):
            return self._stale(generation)
        logger.warning("Agent request failed in %s: %s", self._phase.value, exc)
        if isinstance(exc, MalformedResponseError) and exc.server_message:
            text = exc.server_message
        elif isinstance(exc, RequestTimeoutError):
            text = localized(self._state.language, "timed_out")
        else:
            text = localized(self._state.language, "request_failed")
        return AgentReply(
            phase=self._phase,
            messages=list(lead or []) + [AgentMessage(MessageRole.ERROR, text)],
            options=self._options if self._phase is AgentPhase.MENU_ROOT else (),
            genres=self._genres if self._phase is AgentPhase.MENU_ROOT else (),
            form=form,
            offer_back=True,
            error=exc.kind,
        )

    def _stale(self, generation: int) -> None:
        logger.debug(
            "Dropping stale agent response (generation %d, now %d)", generation, self._generation
        )
        return None

    def _require(self, event: str, *phases: AgentPhase) -> None:
        if self._phase not in phases:
            raise InvalidTransitionError(
                f"'{event}' is not accepted while the agent is in {self._phase.value}."
            )

    def _enter(self, phase: AgentPhase) -> int:
        self._phase = phase
        return self._bump()

    def _bump(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _lang(self) -> Language:
        if self._state.language is None:
            raise InvalidTransitionError("No language has been chosen yet.")
        return self._state.language
