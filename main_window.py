"""
main_window.py – RepackBrowser main window.

Layout
------
  ┌──────────────────────────────────────────────────────┬───────────────┐
  │  [Search] [Genre ▾] [Sort ▾] [Reset] [⟳] [Assistant] │               │
  │  Error banner (hidden unless the last load failed)   │   Assistant   │
  ├───────────────────────────┬──────────────────────────┤   (dock)      │
  │  Game list  (count)       │  Game details + links    │               │
  ├───────────────────────────┴──────────────────────────┤               │
  │  Status log (QPlainTextEdit, read-only)              │               │
  └──────────────────────────────────────────────────────┴───────────────┘

The window only renders; filtering, sorting and the agent dialogue live in
services/.  All calls into the store and the session are submitted to the
AsyncWorker so they run on its event loop.
"""

from __future__ import annotations

import datetime
import html
import logging
from typing import Any, Callable, List, Optional, Tuple

import httpx
from PySide6.QtCore import Qt, QUrl, Slot
from PySide6.QtGui import QDesktopServices, QFont, QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QComboBox,
    QDockWidget,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSplitter,
    QStatusBar,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from agent_panel import AgentPanel
from models.game import Game, SortKey, link_label
from services import catalog_service
from services.agent_service import AgentClient
from services.agent_session import AgentSession
from services.catalog_store import CatalogStore, CatalogView
from workers.async_worker import AsyncWorker

logger = logging.getLogger(__name__)

WEBSITE_URL: str = "https://fluxyrepacks.xyz"

_SORT_LABELS: Tuple[Tuple[SortKey, str], ...] = (
    (SortKey.RECENT, "Most recent"),
    (SortKey.VIEWS, "Most viewed"),
    (SortKey.DOWNLOADS, "Most downloaded"),
    (SortKey.NAME, "Name"),
    (SortKey.SIZE, "Size"),
)

# ── Colour palette ─────────────────────────────────────────────────────────────
_BG         = "#0f1117"
_BG2        = "#1a1d27"
_BG3        = "#22263a"
_ACCENT     = "#4f8ef7"
_ACCENT2    = "#7c5af0"
_TEXT       = "#e2e8f0"
_TEXT_DIM   = "#718096"
_SUCCESS    = "#48bb78"
_ERROR      = "#fc8181"
_BORDER     = "#2d3748"

_STYLESHEET = f"""
QMainWindow, QWidget {{
    background-color: {_BG};
    color: {_TEXT};
    font-family: 'Segoe UI', 'Consolas', monospace;
    font-size: 13px;
}}
QLineEdit, QComboBox {{
    background-color: {_BG2};
    border: 1px solid {_BORDER};
    border-radius: 6px;
    padding: 6px 10px;
    selection-background-color: {_ACCENT};
}}
QLineEdit:focus, QComboBox:focus {{
    border-color: {_ACCENT};
}}
QListWidget#gameList, QTextBrowser {{
    background-color: {_BG2};
    border: 1px solid {_BORDER};
    border-radius: 6px;
    padding: 4px;
}}
QListWidget#gameList::item {{
    padding: 8px 12px;
    border-radius: 4px;
}}
QListWidget#gameList::item:selected {{
    background-color: {_ACCENT};
    color: white;
}}
QPushButton {{
    background-color: {_BG3};
    border: 1px solid {_BORDER};
    border-radius: 5px;
    padding: 7px 14px;
}}
QPushButton:hover {{
    background-color: {_ACCENT};
    border-color: {_ACCENT};
    color: white;
}}
QPushButton:pressed {{
    background-color: {_ACCENT2};
}}
QLabel#errorBanner {{
    background-color: #3b1d24;
    border: 1px solid {_ERROR};
    border-radius: 6px;
    color: {_ERROR};
    padding: 8px 12px;
}}
QLabel#countLabel {{
    color: {_TEXT_DIM};
}}
QPlainTextEdit#logArea {{
    background-color: {_BG};
    border: 1px solid {_BORDER};
    border-radius: 6px;
    font-family: 'Consolas', 'Courier New', monospace;
    font-size: 12px;
    color: {_TEXT_DIM};
}}
QProgressBar {{
    background-color: {_BG2};
    border: none;
    max-height: 4px;
}}
QProgressBar::chunk {{
    background: qlineargradient(x1:0, y1:0, x2:1, y2:0,
        stop:0 {_ACCENT}, stop:1 {_ACCENT2});
}}
QStatusBar {{
    background: {_BG2};
    color: {_TEXT_DIM};
    border-top: 1px solid {_BORDER};
    font-size: 11px;
}}
"""


class MainWindow(QMainWindow):
    """Primary application window."""

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("RepackBrowser")
        self.setMinimumSize(1020, 700)
        self.resize(1280, 800)
        self.setStyleSheet(_STYLESHEET)

        # Core objects; only touched from coroutines on the worker loop.
        self._http = httpx.AsyncClient(
            timeout=catalog_service.HTTP_TIMEOUT, follow_redirects=True
        )
        self._store = CatalogStore()
        self._agent_client = AgentClient(client=self._http)
        self._session = AgentSession(self._agent_client, catalog=self._store)

        self._worker = AsyncWorker(self)
        self._worker.start()

        self._build_ui()
        self._connect_signals()
        self._on_refresh()

    # ── UI construction ───────────────────────────────────────────────────────

    def _build_ui(self) -> None:
        root = QWidget()
        self.setCentralWidget(root)
        root_layout = QVBoxLayout(root)
        root_layout.setContentsMargins(20, 20, 20, 12)
        root_layout.setSpacing(12)

        # ── Top bar ────────────────────────────────────────────────────────
        top = QHBoxLayout()
        top.setSpacing(10)

        self._search_bar = QLineEdit()
        self._search_bar.setPlaceholderText("Search by name, description, cracker or genre…")
        self._search_bar.setClearButtonEnabled(True)
        self._search_bar.setMinimumHeight(36)

        self._genre_combo = QComboBox()
        self._genre_combo.setMinimumWidth(150)
        self._populate_genres([])

        self._sort_combo = QComboBox()
        for key, label in _SORT_LABELS:
            self._sort_combo.addItem(label, key)

        self._reset_btn = QPushButton("Reset")
        self._refresh_btn = QPushButton("⟳  Refresh")
        self._site_btn = QPushButton("Website")
        self._agent_btn = QPushButton("Assistant")
        self._agent_btn.setCheckable(True)

        top.addWidget(self._search_bar, 6)
        top.addWidget(self._genre_combo, 2)
        top.addWidget(self._sort_combo, 2)
        top.addWidget(self._reset_btn)
        top.addWidget(self._refresh_btn)
        top.addWidget(self._site_btn)
        top.addWidget(self._agent_btn)
        root_layout.addLayout(top)

        self._error_banner = QLabel()
        self._error_banner.setObjectName("errorBanner")
        self._error_banner.setWordWrap(True)
        self._error_banner.hide()
        root_layout.addWidget(self._error_banner)

        self._loading_bar = QProgressBar()
        self._loading_bar.setRange(0, 0)
        self._loading_bar.setTextVisible(False)
        self._loading_bar.hide()
        root_layout.addWidget(self._loading_bar)

        # ── Workspace ──────────────────────────────────────────────────────
        splitter = QSplitter(Qt.Orientation.Horizontal)
        splitter.setChildrenCollapsible(False)

        list_side = QWidget()
        list_layout = QVBoxLayout(list_side)
        list_layout.setContentsMargins(0, 0, 0, 0)
        self._count_label = QLabel("(0)")
        self._count_label.setObjectName("countLabel")
        self._game_list = QListWidget()
        self._game_list.setObjectName("gameList")
        self._no_results = QLabel("No games match the current filters.")
        self._no_results.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._no_results.hide()
        list_layout.addWidget(self._count_label)
        list_layout.addWidget(self._game_list, 1)
        list_layout.addWidget(self._no_results)
        splitter.addWidget(list_side)

        self._detail = QTextBrowser()
        self._detail.setOpenLinks(False)
        splitter.addWidget(self._detail)
        splitter.setStretchFactor(0, 5)
        splitter.setStretchFactor(1, 4)
        root_layout.addWidget(splitter, stretch=1)

        self._log_area = QPlainTextEdit()
        self._log_area.setObjectName("logArea")
        self._log_area.setReadOnly(True)
        self._log_area.setMaximumBlockCount(500)
        self._log_area.setFixedHeight(110)
        root_layout.addWidget(self._log_area)

        self._status_bar = QStatusBar()
        self.setStatusBar(self._status_bar)

        # ── Assistant dock ─────────────────────────────────────────────────
        self._agent_panel = AgentPanel(self._session, self._worker)
        self._agent_dock = QDockWidget("Assistant", self)
        self._agent_dock.setWidget(self._agent_panel)
        self._agent_dock.setMinimumWidth(340)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self._agent_dock)
        self._agent_dock.hide()

    # ── Signal wiring ─────────────────────────────────────────────────────────

    def _connect_signals(self) -> None:
        self._search_bar.textChanged.connect(self._on_search_changed)
        self._genre_combo.currentIndexChanged.connect(self._on_genre_changed)
        self._sort_combo.currentIndexChanged.connect(self._on_sort_changed)
        self._reset_btn.clicked.connect(self._on_reset)
        self._refresh_btn.clicked.connect(self._on_refresh)
        self._site_btn.clicked.connect(lambda: QDesktopServices.openUrl(QUrl(WEBSITE_URL)))
        self._agent_btn.toggled.connect(self._agent_dock.setVisible)
        self._agent_dock.visibilityChanged.connect(self._on_agent_visibility)
        self._game_list.currentItemChanged.connect(self._on_game_selected)
        self._detail.anchorClicked.connect(self._on_link_clicked)
        self._agent_panel.game_selected.connect(self._show_detail)
        self._agent_panel.notice.connect(self._log)

        QShortcut(QKeySequence("Ctrl+F"), self).activated.connect(self._search_bar.setFocus)
        QShortcut(QKeySequence("Ctrl+R"), self).activated.connect(self._on_refresh)
        QShortcut(QKeySequence(Qt.Key.Key_Escape), self).activated.connect(self._detail.clear)

    # ── Slots ─────────────────────────────────────────────────────────────────

    @Slot()
    def _on_refresh(self) -> None:
        self._log("Loading catalogue…")
        self._set_status("Fetching catalogue…")
        self._refresh_btn.setEnabled(False)
        self._loading_bar.show()
        self._error_banner.hide()
        self._worker.submit(self._reload(), self._on_reloaded, self._on_task_error)

    async def _reload(self) -> Tuple[Optional[CatalogView], Optional[str], List[str]]:
        view = await self._store.reload(lambda: catalog_service.fetch_catalogue(self._http))
        return view, self._store.last_error, self._store.available_genres()

    def _on_reloaded(self, outcome: Tuple[Optional[CatalogView], Optional[str], List[str]]) -> None:
        view, error, genres = outcome
        if view is None and not error:
            return  # superseded by a newer reload, which owns the loading state
        self._refresh_btn.setEnabled(True)
        self._loading_bar.hide()
        if error:
            self._error_banner.setText(error)
            self._error_banner.show()
            self._log(error, error=True)
            self._set_status("Catalogue load failed.")
            return
        self._populate_genres(genres)
        self._render_view(view)
        self._log(f"Catalogue loaded: {view.total} games.", success=True)
        self._set_status(f"{view.total} games loaded.")

    @Slot(str)
    def _on_search_changed(self, text: str) -> None:
        self._query(self._store.set_search, text)

    @Slot(int)
    def _on_genre_changed(self, index: int) -> None:
        self._query(self._store.set_genre, self._genre_combo.itemData(index) or "")

    @Slot(int)
    def _on_sort_changed(self, index: int) -> None:
        key = self._sort_combo.itemData(index)
        if key is not None:
            self._query(self._store.set_sort, key)

    @Slot()
    def _on_reset(self) -> None:
        for widget in (self._search_bar, self._genre_combo, self._sort_combo):
            widget.blockSignals(True)
        self._search_bar.clear()
        self._genre_combo.setCurrentIndex(0)
        self._sort_combo.setCurrentIndex(0)
        for widget in (self._search_bar, self._genre_combo, self._sort_combo):
            widget.blockSignals(False)
        self._query(self._store.reset_filters)

    @Slot(bool)
    def _on_agent_visibility(self, visible: bool) -> None:
        self._agent_btn.blockSignals(True)
        self._agent_btn.setChecked(visible)
        self._agent_btn.blockSignals(False)
        if visible:
            self._agent_panel.activate()
        else:
            self._agent_panel.deactivate()

    @Slot()
    def _on_game_selected(self) -> None:
        item = self._game_list.currentItem()
        if item is None:
            return
        self._show_detail(item.data(Qt.ItemDataRole.UserRole))

    @Slot(QUrl)
    def _on_link_clicked(self, url: QUrl) -> None:
        self._log(f"Opening {url.toString()}")
        QDesktopServices.openUrl(url)

    def _on_task_error(self, exc: BaseException) -> None:
        self._refresh_btn.setEnabled(True)
        self._loading_bar.hide()
        self._log(f"Unexpected error: {type(exc).__name__}: {exc}", error=True)
        self._set_status("Error – see log.")

    # ── UI helpers ────────────────────────────────────────────────────────────

    def _query(self, mutate: Callable[..., CatalogView], *args: Any) -> None:
        async def _run() -> CatalogView:
            return mutate(*args)

        self._worker.submit(_run(), self._render_view, self._on_task_error)

    def _render_view(self, view: CatalogView) -> None:
        self._game_list.clear()
        for game in view.games:
            item = QListWidgetItem(str(game))
            item.setData(Qt.ItemDataRole.UserRole, game)
            self._game_list.addItem(item)
        self._count_label.setText(view.count_label())
        self._no_results.setVisible(view.total > 0 and view.shown == 0)

    def _populate_genres(self, genres: List[str]) -> None:
        current = self._genre_combo.currentData()
        self._genre_combo.blockSignals(True)
        self._genre_combo.clear()
        self._genre_combo.addItem("All genres", "")
        for genre in genres:
            self._genre_combo.addItem(genre, genre)
        index = self._genre_combo.findData(current) if current else 0
        self._genre_combo.setCurrentIndex(max(index, 0))
        self._genre_combo.blockSignals(False)

    def _show_detail(self, game: Game) -> None:
        self._detail.setHtml(_detail_html(game))
        self._set_status(f"Selected: {game.name}")

    def _set_status(self, msg: str) -> None:
        self._status_bar.showMessage(msg)

    def _log(self, msg: str, *, error: bool = False, success: bool = False) -> None:
        ts = datetime.datetime.now().strftime("%H:%M:%S")
        text = html.escape(msg)
        if error:
            line = f'<span style="color:{_ERROR}">[{ts}] ✗  {text}</span>'
        elif success:
            line = f'<span style="color:{_SUCCESS}">[{ts}] ✓  {text}</span>'
        else:
            line = f'<span style="color:{_TEXT_DIM}">[{ts}]  {text}</span>'
        self._log_area.appendHtml(line)
        sb = self._log_area.verticalScrollBar()
        sb.setValue(sb.maximum())

    # ── Shutdown ──────────────────────────────────────────────────────────────

    def closeEvent(self, event) -> None:
        self._worker.stop(cleanup=self._shutdown())
        super().closeEvent(event)

    async def _shutdown(self) -> None:
        self._session.close()
        await self._http.aclose()


def _detail_html(game: Game) -> str:
    esc = html.escape
    rows = [
        ("Size", game.size),
        ("Version", game.version),
        ("Cracker", game.cracker),
        ("Author", game.author.username if game.author else ""),
        ("Steam ID", str(game.steam_id) if game.steam_id else "N/A"),
        ("Online", "Yes" if game.is_online else "No"),
    ]
    parts = []
    if game.image_address:
        parts.append(f'<img src="{esc(game.image_address)}" width="360">')
    parts.append(f"<h2>{esc(game.name)}</h2>")
    parts.append(f"<p>👁 {game.views} views &nbsp; ⬇ {game.downloads} downloads</p>")
    parts.append(f"<p>{esc(game.description)}</p>")
    parts.append("<table>" + "".join(
        f"<tr><td><b>{label}:</b></td><td>{esc(value)}</td></tr>" for label, value in rows
    ) + "</table>")
    parts.append("<p>" + " · ".join(esc(g) for g in game.genre) + "</p>")

    links = [f'<a href="{esc(url)}">🔗 {esc(link_label(url))}</a>' for url in game.links]
    links += [f'<a href="{esc(magnet)}">🌪 Open with torrent client</a>' for magnet in game.magnet_links]
    parts.append("<h3>Downloads</h3>")
    parts.append("<br>".join(links) if links else "<p><i>No download link available</i></p>")
    return "".join(parts)
