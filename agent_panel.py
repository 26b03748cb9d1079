"""
agent_panel.py – Chat-style dock widget that renders an AgentSession.

The panel never decides anything itself: each click is forwarded to the
session (on the AsyncWorker loop) and the returned AgentReply is drawn.
A None reply means the session dropped a stale response; nothing is drawn.
"""

from __future__ import annotations

import html
from typing import Any, Coroutine, Dict, Optional, Tuple

from PySide6.QtCore import Signal, Slot
from PySide6.QtWidgets import (
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QScrollArea,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from models.agent import AgentPhase, AgentReply, FormKind, Language, MessageRole
from models.game import Game
from services.agent_session import AgentSession
from services.exceptions import ErrorKind
from workers.async_worker import AsyncWorker

_ROLE_COLOURS: Dict[MessageRole, str] = {
    MessageRole.AGENT: "#e2e8f0",
    MessageRole.USER: "#4f8ef7",
    MessageRole.ERROR: "#fc8181",
    MessageRole.SUCCESS: "#48bb78",
}

_FORM_FIELDS: Dict[FormKind, Tuple[str, ...]] = {
    FormKind.REPORT: ("gameName", "gameId", "linkUrl", "userComment"),
    FormKind.SUGGEST: ("gameName", "gameLink", "description"),
}

_LABELS: Dict[Language, Dict[str, str]] = {
    Language.EN: {
        "gameName": "Game name *",
        "gameId": "Game ID",
        "linkUrl": "Broken link",
        "userComment": "Comment",
        "gameLink": "Link",
        "description": "Description",
        "submit": "Send",
        "back": "← Back to menu",
        "not_found": "This game is not in the loaded catalogue.",
    },
    Language.FR: {
        "gameName": "Nom du jeu *",
        "gameId": "ID du jeu",
        "linkUrl": "Lien cassé",
        "userComment": "Commentaire",
        "gameLink": "Lien",
        "description": "Description",
        "submit": "Envoyer",
        "back": "← Retour au menu",
        "not_found": "Ce jeu n'est pas dans le catalogue chargé.",
    },
}


class AgentPanel(QWidget):
    game_selected = Signal(object)  # Game from the authoritative catalogue
    notice = Signal(str)            # status line for the main window log

    def __init__(self, session: AgentSession, worker: AsyncWorker, parent=None) -> None:
        super().__init__(parent)
        self._session = session
        self._worker = worker
        self._active = False
        self._language = Language.EN
        self._form_kind: Optional[FormKind] = None
        self._form_inputs: Dict[str, QLineEdit] = {}
        self._build_ui()

    # ── UI construction ───────────────────────────────────────────────────────

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(8)

        self._chat = QTextBrowser()
        layout.addWidget(self._chat, 3)

        self._choices = QWidget()
        self._choices_layout = QVBoxLayout(self._choices)
        self._choices_layout.setContentsMargins(0, 0, 0, 0)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(self._choices)
        layout.addWidget(scroll, 2)

        self._input_row = QWidget()
        row = QHBoxLayout(self._input_row)
        row.setContentsMargins(0, 0, 0, 0)
        self._input = QLineEdit()
        self._send_btn = QPushButton("➤")
        row.addWidget(self._input, 1)
        row.addWidget(self._send_btn)
        self._input_row.hide()
        layout.addWidget(self._input_row)

        self._form = QWidget()
        self._form_layout = QFormLayout(self._form)
        self._form.hide()
        layout.addWidget(self._form)

        self._input.returnPressed.connect(self._on_send)
        self._send_btn.clicked.connect(self._on_send)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def activate(self) -> None:
        if self._active:
            return
        self._active = True
        self._chat.clear()
        self._submit(self._session.open())

    def deactivate(self) -> None:
        if not self._active:
            return
        self._active = False

        async def _close() -> AgentReply:
            return self._session.close()

        self._submit(_close())

    # ── Slots ─────────────────────────────────────────────────────────────────

    @Slot()
    def _on_send(self) -> None:
        text = self._input.text()
        self._input.clear()
        self._submit(self._session.submit_text(text))

    @Slot()
    def _on_form_submit(self) -> None:
        fields = {key: widget.text() for key, widget in self._form_inputs.items()}
        self._submit(self._session.submit_form(fields))

    def _on_language(self, lang: Language) -> None:
        self._language = lang
        self._submit(self._session.choose_language(lang))

    def _on_result(self, game: Game) -> None:
        async def _resolve() -> Optional[Game]:
            return self._session.select_result(game)

        self._worker.submit(_resolve(), self._on_resolved, self._on_error)

    def _on_resolved(self, game: Optional[Game]) -> None:
        if game is None:
            self.notice.emit(self._text("not_found"))
            return
        self.game_selected.emit(game)

    def _on_error(self, exc: BaseException) -> None:
        self._append(MessageRole.ERROR, str(exc))
        self.notice.emit(f"Assistant error: {exc}")

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _render(self, reply: Optional[AgentReply]) -> None:
        if reply is None:
            return
        for message in reply.messages:
            self._append(message.role, message.text)

        self._clear_choices()
        if reply.phase is AgentPhase.LANGUAGE_SELECT:
            self._add_choice("English", lambda: self._on_language(Language.EN))
            self._add_choice("Français", lambda: self._on_language(Language.FR))
        for option in reply.options:
            self._add_choice(option.label, lambda _checked=False, o=option: self._submit(self._session.select_option(o.id)))
        for genre in reply.genres:
            self._add_choice(genre, lambda _checked=False, g=genre: self._submit(self._session.choose_genre(g)))
        for game in reply.results:
            self._add_choice(str(game), lambda _checked=False, g=game: self._on_result(g))
        if reply.offer_back:
            self._add_choice(self._text("back"), lambda: self._submit(self._session.back()))
        self._choices_layout.addStretch()

        searching = reply.phase is AgentPhase.AWAITING_SEARCH_TEXT
        self._input_row.setVisible(searching)
        if searching:
            self._input.setPlaceholderText(reply.placeholder)
            self._input.setFocus()

        self._render_form(reply)

    def _render_form(self, reply: AgentReply) -> None:
        if reply.form is None:
            self._form.hide()
            self._form_kind = None
            return
        if reply.form is not self._form_kind:
            self._build_form(reply.form)
        if reply.error is ErrorKind.VALIDATION and reply.messages:
            self._form_error.setText(reply.messages[-1].text)
            self._form_error.show()
        else:
            self._form_error.hide()
        self._form.show()

    def _build_form(self, kind: FormKind) -> None:
        while self._form_layout.rowCount():
            self._form_layout.removeRow(0)
        # removeRow deletes the shared widgets too; recreate them.
        self._form_error = QLabel()
        self._form_error.setStyleSheet(f"color: {_ROLE_COLOURS[MessageRole.ERROR]};")
        self._form_submit = QPushButton(self._text("submit"))
        self._form_submit.clicked.connect(self._on_form_submit)

        self._form_inputs = {}
        for key in _FORM_FIELDS[kind]:
            widget = QLineEdit()
            self._form_inputs[key] = widget
            self._form_layout.addRow(self._text(key), widget)
        self._form_layout.addRow(self._form_error)
        self._form_layout.addRow(self._form_submit)
        self._form_kind = kind

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _submit(self, coro: Coroutine[Any, Any, Optional[AgentReply]]) -> None:
        self._worker.submit(coro, self._render, self._on_error)

    def _append(self, role: MessageRole, text: str) -> None:
        colour = _ROLE_COLOURS[role]
        align = "right" if role is MessageRole.USER else "left"
        self._chat.append(
            f'<p align="{align}" style="color:{colour}">{html.escape(text)}</p>'
        )

    def _add_choice(self, label: str, handler) -> None:
        button = QPushButton(label)
        button.clicked.connect(handler)
        self._choices_layout.addWidget(button)

    def _clear_choices(self) -> None:
        while self._choices_layout.count():
            item = self._choices_layout.takeAt(0)
            widget = item.widget()
            if widget is not None:
                widget.deleteLater()

    def _text(self, key: str) -> str:
        return _LABELS[self._language][key]
