from __future__ import annotations

import logging
import os

from PySide6.QtCore import QSettings, Qt, QTimer
from PySide6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QCheckBox,
    QComboBox,
    QFileDialog,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QPushButton,
    QSplitter,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from message_downloader.core.errors import ExportError
from message_downloader.core.exporter import (
    default_export_filename,
    render_plain_text,
    render_verbose,
    write_export,
)
from message_downloader.core.logging_setup import configure_logging
from message_downloader.core.models import NOTICE_ERROR, NOTICE_WARNING, Message
from message_downloader.core.orchestrator import ConnectionStatus, Orchestrator
from message_downloader.core.paths import APP_NAME, resolve_default_paths
from message_downloader.core.token_store import (
    TokenStoreError,
    delete_token,
    keyring_available,
    load_token,
    save_token,
)
from message_downloader.ui.log_tab import LogTab

TICK_INTERVAL_MS = 16
NOTICE_TIMEOUT_MS = 6000

CATEGORY_GUILDS = 0
CATEGORY_DMS = 1

NODE_KIND_GUILD = "guild"
NODE_KIND_DM = "dm"
NODE_KIND_CATEGORY = "category"
NODE_KIND_CHANNEL = "channel"

STYLESHEET = """
QLabel#StatusDot { min-width: 10px; max-width: 10px; min-height: 10px; max-height: 10px;
                   border-radius: 5px; background: #ef4444; }
QLabel#StatusDot[connected="true"] { background: #22c55e; }
QLabel#UserLabel { color: rgb(37, 150, 190); font-weight: bold; }
"""


class MainWindow(QMainWindow):
    """Renders orchestrator state and forwards user intents to it.

    A timer drains the orchestrator once per frame; the window never waits
    on the network itself.
    """

    def __init__(
        self,
        *,
        orchestrator: Orchestrator | None = None,
        default_export_root: str | None = None,
        startup_warnings: tuple[str, ...] = (),
    ):
        super().__init__()
        self.setWindowTitle("Discord Message Downloader")
        self.resize(1100, 720)
        self.setMinimumSize(800, 600)

        self._orchestrator = orchestrator or Orchestrator()
        self._settings = QSettings(APP_NAME, APP_NAME)
        self._logger = logging.getLogger("msgdownloader.ui")
        self._default_export_root = default_export_root or os.getcwd()
        self._startup_warnings = startup_warnings

        self._dirty = True
        self._rendered_status: ConnectionStatus | None = None
        self._rendered_guilds: tuple = ()
        self._rendered_dms: tuple = ()
        self._rendered_channels: tuple = ()
        self._rendered_category = -1
        self._rendered_message_count = 0

        self._build_ui()
        self._configure_token_persistence()
        self._load_saved_token()
        for warning in self._startup_warnings:
            self._logger.warning(warning)

        self._frame_timer = QTimer(self)
        self._frame_timer.timeout.connect(self.on_frame)
        self._frame_timer.start(TICK_INTERVAL_MS)

    def _build_ui(self) -> None:
        root = QWidget()
        root_layout = QVBoxLayout(root)
        root_layout.setContentsMargins(16, 16, 16, 16)
        root_layout.setSpacing(12)

        top_bar = QHBoxLayout()
        self.token_label = QLabel("Your Discord Token:")
        self.token_input = QLineEdit()
        self.token_input.setPlaceholderText("Discord user token")
        self.token_input.setEchoMode(QLineEdit.Password)
        self.token_input.returnPressed.connect(self.on_connect_clicked)

        self.remember_token = QCheckBox("Remember token")

        self.connect_button = QPushButton("Connect")
        self.connect_button.clicked.connect(self.on_connect_clicked)

        self.status_dot = QLabel()
        self.status_dot.setObjectName("StatusDot")
        self.status_dot.setProperty("connected", False)
        self.status_label = QLabel("Disconnected")
        self.user_label = QLabel("")
        self.user_label.setObjectName("UserLabel")

        top_bar.addWidget(self.connect_button)
        top_bar.addWidget(self.token_label)
        top_bar.addWidget(self.token_input, 3)
        top_bar.addWidget(self.remember_token)
        top_bar.addSpacing(10)
        top_bar.addWidget(self.status_dot)
        top_bar.addWidget(self.status_label)
        top_bar.addWidget(self.user_label)
        root_layout.addLayout(top_bar)

        splitter = QSplitter(Qt.Horizontal)
        splitter.setChildrenCollapsible(False)

        server_panel = QWidget()
        server_layout = QVBoxLayout(server_panel)
        server_layout.setContentsMargins(0, 0, 0, 0)
        self.category_combo = QComboBox()
        self.category_combo.addItems(["Servers", "Direct Messages"])
        self.category_combo.currentIndexChanged.connect(self.on_category_changed)
        self.server_list = QListWidget()
        self.server_list.itemClicked.connect(self.on_server_item_clicked)
        server_layout.addWidget(self.category_combo)
        server_layout.addWidget(self.server_list, 1)

        channel_panel = QWidget()
        channel_layout = QVBoxLayout(channel_panel)
        channel_layout.setContentsMargins(0, 0, 0, 0)
        channel_layout.addWidget(QLabel("Channels"))
        self.channel_tree = QTreeWidget()
        self.channel_tree.setHeaderHidden(True)
        self.channel_tree.itemClicked.connect(self.on_channel_item_clicked)
        channel_layout.addWidget(self.channel_tree, 1)
        self.channel_panel = channel_panel

        self.tabs = QTabWidget()
        self.tabs.addTab(self._build_download_tab(), "Download")
        self.log_tab = LogTab()
        self.tabs.addTab(self.log_tab, "Logs")

        splitter.addWidget(server_panel)
        splitter.addWidget(channel_panel)
        splitter.addWidget(self.tabs)
        splitter.setSizes([220, 260, 620])
        root_layout.addWidget(splitter, 1)

        self.setCentralWidget(root)
        self.setStyleSheet(STYLESHEET)

    def _build_download_tab(self) -> QWidget:
        tab = QWidget()
        layout = QVBoxLayout(tab)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(10)

        self.download_title = QLabel("No channel selected")
        self.download_title.setStyleSheet("font-size: 16px; font-weight: bold;")

        actions = QHBoxLayout()
        self.start_button = QPushButton("Start")
        self.start_button.clicked.connect(self.on_start_download)
        self.cancel_button = QPushButton("Cancel")
        self.cancel_button.clicked.connect(self.on_cancel_download)
        self.downloaded_label = QLabel("Downloaded: 0")
        self.save_plain_button = QPushButton("Save Plaintext")
        self.save_plain_button.clicked.connect(lambda: self.on_save(verbose=False))
        self.save_verbose_button = QPushButton("Save Verbose")
        self.save_verbose_button.clicked.connect(lambda: self.on_save(verbose=True))
        self.close_selection_button = QPushButton("Close")
        self.close_selection_button.clicked.connect(self.on_close_selection)

        actions.addWidget(self.start_button)
        actions.addWidget(self.cancel_button)
        actions.addWidget(self.downloaded_label)
        actions.addStretch(1)
        actions.addWidget(self.save_plain_button)
        actions.addWidget(self.save_verbose_button)
        actions.addWidget(self.close_selection_button)

        self.messages_table = QTableWidget(0, 3)
        self.messages_table.setHorizontalHeaderLabels(["Time", "Name", "Content"])
        self.messages_table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.messages_table.setAlternatingRowColors(True)
        self.messages_table.verticalHeader().setVisible(False)
        header = self.messages_table.horizontalHeader()
        header.setSectionResizeMode(0, QHeaderView.ResizeToContents)
        header.setSectionResizeMode(1, QHeaderView.Interactive)
        header.setStretchLastSection(True)

        layout.addWidget(self.download_title)
        layout.addLayout(actions)
        layout.addWidget(self.messages_table, 1)
        return tab

    # -- token persistence ------------------------------------------------

    def _configure_token_persistence(self) -> None:
        available, reason = keyring_available()
        if available:
            raw = self._settings.value("auth/remember_token", False)
            self.remember_token.setChecked(str(raw).strip().lower() in {"1", "true", "yes", "on"})
            return
        self.remember_token.setChecked(False)
        self.remember_token.setEnabled(False)
        self.remember_token.setToolTip(reason or "Keyring backend unavailable on this system.")
        self._logger.warning("Remember token disabled: %s", reason or "keyring unavailable")

    def _load_saved_token(self) -> None:
        if not self.remember_token.isEnabled() or not self.remember_token.isChecked():
            return
        try:
            stored = load_token()
        except TokenStoreError as exc:
            self._logger.error("Token load failed: %s", exc)
            return
        if stored:
            self.token_input.setText(stored)

    def _persist_token_choice(self, token: str) -> None:
        if not self.remember_token.isEnabled():
            return
        remember = self.remember_token.isChecked()
        self._settings.setValue("auth/remember_token", remember)
        try:
            if remember:
                save_token(token)
                self._logger.info("Token saved to OS keychain.")
            else:
                delete_token()
        except TokenStoreError as exc:
            self._logger.error("Token store failed: %s", exc)

    # -- intents ----------------------------------------------------------

    def _validated_token(self) -> str | None:
        token = self.token_input.text().strip()
        if not token:
            self._logger.warning("Token missing.")
            self.statusBar().showMessage("Token required", NOTICE_TIMEOUT_MS)
            return None
        if any(ch.isspace() for ch in token):
            self._logger.warning("Token contains whitespace or line breaks.")
            self.statusBar().showMessage("Token must be a single line with no spaces.", NOTICE_TIMEOUT_MS)
            return None
        return token

    def on_connect_clicked(self) -> None:
        if self._orchestrator.status is not ConnectionStatus.DISCONNECTED:
            self._orchestrator.disconnect()
            self._dirty = True
            return
        token = self._validated_token()
        if not token:
            return
        self._persist_token_choice(token)
        self._orchestrator.connect(token)
        self._dirty = True

    def on_category_changed(self, index: int) -> None:
        self._dirty = True

    def on_server_item_clicked(self, item: QListWidgetItem) -> None:
        data = item.data(Qt.UserRole) or {}
        if data.get("kind") == NODE_KIND_GUILD:
            self._orchestrator.load_channels(data["id"])
        elif data.get("kind") == NODE_KIND_DM:
            self._orchestrator.select_channel(data["id"], data["name"])
        self._dirty = True

    def on_channel_item_clicked(self, item: QTreeWidgetItem, column: int) -> None:
        data = item.data(0, Qt.UserRole) or {}
        if data.get("kind") != NODE_KIND_CHANNEL:
            return
        self._orchestrator.select_channel(data["id"], data["name"])
        self._dirty = True

    def on_start_download(self) -> None:
        self._orchestrator.start_download()
        self._dirty = True

    def on_cancel_download(self) -> None:
        self._orchestrator.cancel_download()
        self._dirty = True

    def on_close_selection(self) -> None:
        self._orchestrator.clear_selection()
        self._dirty = True

    def on_save(self, *, verbose: bool) -> None:
        selection = self._orchestrator.selection
        messages = self._orchestrator.messages
        if not selection or not messages:
            return
        start_dir = self._settings.value("export/last_dir", self._default_export_root) or self._default_export_root
        suggested = os.path.join(str(start_dir), default_export_filename(selection[1], verbose=verbose))
        path, _ = QFileDialog.getSaveFileName(self, "Save messages", suggested, "Text files (*.txt);;All files (*)")
        if not path:
            return
        text = render_verbose(messages) if verbose else render_plain_text(messages)
        try:
            write_export(path, text)
        except ExportError as exc:
            self._logger.error("Export failed: %s", exc)
            self.statusBar().showMessage("Error Saving", NOTICE_TIMEOUT_MS)
            return
        self._settings.setValue("export/last_dir", os.path.dirname(path))
        self._logger.info("Saved %s messages to %s", len(messages), path)
        self.statusBar().showMessage("Saved", NOTICE_TIMEOUT_MS)

    # -- frame ------------------------------------------------------------

    def on_frame(self) -> None:
        if self._orchestrator.tick():
            self._dirty = True
        for notice in self._orchestrator.take_notices():
            self.statusBar().showMessage(notice.text, NOTICE_TIMEOUT_MS)
            if notice.level == NOTICE_ERROR:
                self._logger.error(notice.text)
            elif notice.level == NOTICE_WARNING:
                self._logger.warning(notice.text)
            else:
                self._logger.info(notice.text)
        if self._dirty:
            self._dirty = False
            self._render()

    def _render(self) -> None:
        self._render_connection()
        self._render_server_list()
        self._render_channels()
        self._render_download_panel()
        self._render_messages()

    def _render_connection(self) -> None:
        status = self._orchestrator.status
        if status is self._rendered_status:
            return
        self._rendered_status = status
        connected = status is ConnectionStatus.CONNECTED
        self.status_dot.setProperty("connected", connected)
        self.status_dot.style().unpolish(self.status_dot)
        self.status_dot.style().polish(self.status_dot)
        self.token_input.setVisible(status is ConnectionStatus.DISCONNECTED)
        self.token_label.setVisible(status is ConnectionStatus.DISCONNECTED)
        self.remember_token.setVisible(status is ConnectionStatus.DISCONNECTED)
        if connected:
            self.status_label.setText("Logged in as:")
            self.user_label.setText(self._orchestrator.display_name)
            self.connect_button.setText("Disconnect")
        elif status is ConnectionStatus.CONNECTING:
            self.status_label.setText("Connecting...")
            self.user_label.setText("")
            self.connect_button.setText("Cancel")
        else:
            self.status_label.setText("Disconnected")
            self.user_label.setText("")
            self.connect_button.setText("Connect")

    def _render_server_list(self) -> None:
        guilds = self._orchestrator.guilds
        dms = self._orchestrator.direct_channels
        category = self.category_combo.currentIndex()
        if (
            guilds is self._rendered_guilds
            and dms is self._rendered_dms
            and category == self._rendered_category
        ):
            return
        self._rendered_guilds = guilds
        self._rendered_dms = dms
        self._rendered_category = category
        self.channel_panel.setVisible(category == CATEGORY_GUILDS)

        self.server_list.clear()
        if category == CATEGORY_GUILDS:
            for guild in guilds:
                item = QListWidgetItem(guild.name)
                item.setData(Qt.UserRole, {"kind": NODE_KIND_GUILD, "id": guild.id, "name": guild.name})
                item.setToolTip(f"Server ID: {guild.id}")
                self.server_list.addItem(item)
        else:
            for dm in dms:
                item = QListWidgetItem(dm.label)
                item.setData(Qt.UserRole, {"kind": NODE_KIND_DM, "id": dm.id, "name": dm.label})
                item.setToolTip(f"Channel ID: {dm.id}")
                self.server_list.addItem(item)

    def _render_channels(self) -> None:
        channels = self._orchestrator.channels
        if channels is self._rendered_channels:
            return
        self._rendered_channels = channels
        self.channel_tree.clear()

        categories: dict[str, QTreeWidgetItem] = {}
        for channel in channels:
            if channel.is_category:
                header = QTreeWidgetItem([channel.name])
                header.setData(0, Qt.UserRole, {"kind": NODE_KIND_CATEGORY, "id": channel.id})
                header.setFlags(Qt.ItemIsEnabled)
                font = header.font(0)
                font.setBold(True)
                header.setFont(0, font)
                categories[channel.id] = header
                self.channel_tree.addTopLevelItem(header)

        for channel in channels:
            if not channel.is_text_based:
                continue
            item = QTreeWidgetItem([f"# {channel.name}"])
            item.setData(0, Qt.UserRole, {"kind": NODE_KIND_CHANNEL, "id": channel.id, "name": channel.name})
            item.setToolTip(0, f"Channel ID: {channel.id}")
            parent = categories.get(channel.parent_id or "")
            if parent is not None:
                parent.addChild(item)
            else:
                self.channel_tree.addTopLevelItem(item)
        self.channel_tree.expandAll()

    def _render_download_panel(self) -> None:
        selection = self._orchestrator.selection
        downloading = self._orchestrator.is_downloading
        count = self._orchestrator.message_count
        has_selection = selection is not None

        self.download_title.setText(f"Download: {selection[1]}" if selection else "No channel selected")
        self.start_button.setEnabled(has_selection and not downloading)
        self.cancel_button.setEnabled(downloading)
        self.downloaded_label.setText(f"Downloaded: {count}")
        self.save_plain_button.setEnabled(has_selection and count > 0)
        self.save_verbose_button.setEnabled(has_selection and count > 0)
        self.close_selection_button.setEnabled(has_selection)

    def _render_messages(self) -> None:
        messages = self._orchestrator.messages
        if len(messages) < self._rendered_message_count:
            self.messages_table.setRowCount(0)
            self._rendered_message_count = 0
        if len(messages) == self._rendered_message_count:
            return
        new_rows = messages[self._rendered_message_count:]
        start = self._rendered_message_count
        self.messages_table.setRowCount(len(messages))
        for offset, message in enumerate(new_rows):
            self._fill_row(start + offset, message)
        self._rendered_message_count = len(messages)

    def _fill_row(self, row: int, message: Message) -> None:
        self.messages_table.setItem(row, 0, QTableWidgetItem(message.timestamp))
        self.messages_table.setItem(row, 1, QTableWidgetItem(message.author_name))
        content = QTableWidgetItem(message.content.replace("\n", " "))
        content.setToolTip(message.content)
        self.messages_table.setItem(row, 2, content)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self._frame_timer.stop()
        self._orchestrator.shutdown()
        self.log_tab.detach()
        super().closeEvent(event)


def run() -> None:
    paths = resolve_default_paths()
    configure_logging(paths.logs_dir)
    app = QApplication.instance() or QApplication([])
    window = MainWindow(default_export_root=paths.export_root, startup_warnings=paths.warnings)
    window.show()
    app.exec()


if __name__ == "__main__":
    run()
