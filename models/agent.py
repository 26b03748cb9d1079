"""
models/agent.py – Data models for the conversational agent.

Wire schemas (one per Agent Service endpoint) are pydantic models and are
validated on receipt.  Session-local state uses plain enums and dataclasses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.game import Game, validate_games
from services.exceptions import ErrorKind


class Language(str, Enum):
    EN = "en"
    FR = "fr"


class OptionType(str, Enum):
    SEARCH = "search"
    GENRE = "genre"
    ACTION = "action"
    REPORT = "report"
    SUGGEST = "suggest"


class Leaderboard(str, Enum):
    """Leaf actions; the value is the endpoint path segment."""

    MOST_DOWNLOADED = "most-downloaded"
    MOST_VIEWED = "most-viewed"
    RECENT = "recent"


class AgentPhase(str, Enum):
    CLOSED = "closed"
    LANGUAGE_SELECT = "language_select"
    MENU_ROOT = "menu_root"
    AWAITING_SEARCH_TEXT = "awaiting_search_text"
    SHOWING_RESULTS = "showing_results"
    FORM_REPORT = "form_report"
    FORM_SUGGEST = "form_suggest"


class FormKind(str, Enum):
    REPORT = "report"
    SUGGEST = "suggest"


# ── Wire schemas ─────────────────────────────────────────────────────────────


class _Wire(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class AgentOption(_Wire):
    id: str
    label: str
    type: OptionType


class OptionsResponse(_Wire):
    greeting: str
    options: Tuple[AgentOption, ...]


class GenresResponse(_Wire):
    success: bool
    message: str = ""
    genres: Tuple[str, ...] = ()


class ResultsResponse(_Wire):
    success: bool
    message: str = ""
    results: Tuple[Game, ...] = ()

    @field_validator("results", mode="before")
    @classmethod
    def _keep_valid_results(cls, value: Any) -> Any:
        if isinstance(value, list):
            return validate_games(value, "agent result")
        return value


class AckResponse(_Wire):
    success: bool
    message: str = ""


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReportRequest(_Payload):
    game_name: str = Field(min_length=1)
    lang: Language
    game_id: Optional[str] = None
    link_url: Optional[str] = None
    user_comment: Optional[str] = None


class SuggestRequest(_Payload):
    game_name: str = Field(min_length=1)
    lang: Language
    game_link: Optional[str] = None
    description: Optional[str] = None


# ── Session state ────────────────────────────────────────────────────────────


@dataclass
class AgentState:
    """
    The one live state record of an AgentSession.

    language survives close/open; everything else is transient.
    """

    language: Optional[Language] = None
    current_context: Optional[str] = None
    pending_form: Optional[Dict[str, str]] = None

    def reset_transient(self) -> None:
        self.current_context = None
        self.pending_form = None


class MessageRole(str, Enum):
    AGENT = "agent"
    USER = "user"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class AgentMessage:
    role: MessageRole
    text: str


@dataclass
class AgentReply:
    """
    Everything the UI needs to render after one session event.

    Attributes
    ----------
    phase        : Phase the session is in after the event.
    messages     : Chat lines to append, in order.
    options      : Menu options to offer (MenuRoot only).
    genres       : Genre choices to offer (after a genre option).
    results      : Games to list (ShowingResults only).
    form         : Form to render, if any.
    prompt       : Input prompt for free-text entry.
    placeholder  : Placeholder for the free-text entry.
    offer_back   : Whether a back-to-menu control should be shown.
    error        : Kind of the error surfaced in messages, if any.
    """

    phase: AgentPhase
    messages: List[AgentMessage] = field(default_factory=list)
    options: Tuple[AgentOption, ...] = ()
    genres: Tuple[str, ...] = ()
    results: Tuple[Game, ...] = ()
    form: Optional[FormKind] = None
    prompt: str = ""
    placeholder: str = ""
    offer_back: bool = False
    error: Optional[ErrorKind] = None
