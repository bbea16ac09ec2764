from __future__ import annotations

import logging
import sys
from typing import Callable, Dict, List, Optional

from PySide6.QtCore import Qt, QThread, Signal, QSize
from PySide6.QtGui import QColor, QKeySequence, QPalette, QShortcut
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSplitter,
    QStyle,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from . import available_backends
from .base import Backend
from .models import PackageRecord, PackageStatus

logger = logging.getLogger(__name__)


class BackendWorker(QThread):
    """Runs one backend call off the UI thread."""

    result = Signal(str, object, object)  # backend name, records, error

    def __init__(self, backend: Backend, call: Callable[[Backend], List[PackageRecord]]) -> None:
        super().__init__()
        self.backend = backend
        self.call = call

    def run(self) -> None:
        try:
            records = self.call(self.backend)
            self.result.emit(self.backend.name, records, None)
        except Exception as e:
            logger.warning("%s", e)
            self.result.emit(self.backend.name, [], e)


class RecordListWidget(QListWidget):
    def __init__(self) -> None:
        super().__init__()
        self.all_items: List[PackageRecord] = []
        self.setAlternatingRowColors(True)
        self.setIconSize(QSize(24, 24))

    def refresh(self, query: str | None = None) -> None:
        self.clear()
        q = (query or "").lower()
        icon = self.style().standardIcon(QStyle.StandardPixmap.SP_ComputerIcon)
        for record in self.all_items:
            if q and q not in record.name.lower():
                continue
            li = QListWidgetItem(record.label)
            li.setData(Qt.UserRole, record)
            li.setIcon(icon)
            self.addItem(li)

    def update_data(self, items: List[PackageRecord], query: str | None = None) -> None:
        self.all_items = sorted(items, key=lambda r: r.name.lower())
        self.refresh(query)


class MainWindow(QMainWindow):
    def __init__(self, backends: Optional[List[Backend]] = None) -> None:
        super().__init__()
        self.setWindowTitle("PkgVault")
        self.resize(1100, 700)
        self.setWindowIcon(self.style().standardIcon(QStyle.StandardPixmap.SP_ComputerIcon))

        self.backends: List[Backend] = backends if backends is not None else available_backends()
        self.lists: Dict[str, RecordListWidget] = {}
        self.workers: List[BackendWorker] = []

        # Top controls
        self.search_box = QLineEdit()
        self.search_box.setPlaceholderText("Filter by name, Enter to search the repositories…")
        self.refresh_btn = QPushButton("Installed")
        self.info_label = QLabel("")

        top_bar = QHBoxLayout()
        top_bar.addWidget(QLabel("Search:"))
        top_bar.addWidget(self.search_box, 1)
        top_bar.addWidget(self.refresh_btn)

        # One tab per package manager (left)
        self.tabs = QTabWidget()
        for backend in self.backends:
            lw = RecordListWidget()
            lw.currentItemChanged.connect(self.on_selection_changed)
            self.lists[backend.name] = lw
            self.tabs.addTab(lw, backend.name)

        # Details + actions (right)
        self.title_label = QLabel("Select a package to see details.")
        self.title_label.setObjectName("titleLabel")
        self.tags_label = QLabel("")
        self.tags_label.setObjectName("tagsLabel")
        self.install_btn = QPushButton("Install")
        self.install_btn.setEnabled(False)
        self.remove_btn = QPushButton("Remove")
        self.remove_btn.setEnabled(False)
        self.remove_btn.setObjectName("deleteButton")

        right = QVBoxLayout()
        right.addWidget(self.title_label)
        right.addWidget(self.tags_label)
        actions_bar = QHBoxLayout()
        actions_bar.addWidget(self.install_btn)
        actions_bar.addWidget(self.remove_btn)
        actions_bar.addStretch(1)
        right.addLayout(actions_bar)
        right.addStretch(1)

        left_layout = QVBoxLayout()
        left_layout.addLayout(top_bar)
        left_layout.addWidget(self.tabs, 1)
        left_layout.addWidget(self.info_label)
        left_widget = QWidget()
        left_widget.setLayout(left_layout)
        right_widget = QWidget()
        right_widget.setLayout(right)

        splitter = QSplitter()
        splitter.addWidget(left_widget)
        splitter.addWidget(right_widget)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 2)

        root_layout = QVBoxLayout()
        root_layout.addWidget(splitter, 1)
        cw = QWidget()
        cw.setLayout(root_layout)
        self.setCentralWidget(cw)

        # Signals
        self.refresh_btn.clicked.connect(self.run_scan)
        self.search_box.textChanged.connect(self.on_filter_changed)
        self.search_box.returnPressed.connect(self.run_search)
        self.install_btn.clicked.connect(self.on_install_clicked)
        self.remove_btn.clicked.connect(self.on_remove_clicked)

        # Shortcuts
        QShortcut(QKeySequence("Ctrl+F"), self, activated=lambda: self.search_box.setFocus())
        QShortcut(QKeySequence("F5"), self, activated=self.run_scan)

        if not self.backends:
            self.info_label.setText("No supported package manager found.")
            return
        self.run_scan()

    def _current_backend(self) -> Optional[Backend]:
        idx = self.tabs.currentIndex()
        if idx < 0 or idx >= len(self.backends):
            return None
        return self.backends[idx]

    def _current_record(self) -> Optional[PackageRecord]:
        backend = self._current_backend()
        if backend is None:
            return None
        item = self.lists[backend.name].currentItem()
        if not item:
            return None
        return item.data(Qt.UserRole)

    def _start(self, backend: Backend, call: Callable[[Backend], List[PackageRecord]], message: str) -> None:
        QApplication.setOverrideCursor(Qt.WaitCursor)
        self.info_label.setText(message)
        worker = BackendWorker(backend, call)
        worker.result.connect(self.on_result)
        worker.finished.connect(lambda: self.workers.remove(worker))
        self.workers.append(worker)
        worker.start()

    def run_scan(self) -> None:
        self._clear_details()
        for backend in self.backends:
            self._start(backend, lambda b: b.list_installed(), "Listing installed packages…")

    def run_search(self) -> None:
        backend = self._current_backend()
        keywords = self.search_box.text().split()
        if backend is None or not keywords:
            return
        self._clear_details()
        self._start(backend, lambda b: b.search(keywords), f"Searching {backend.name}…")

    def on_result(self, name: str, records: List[PackageRecord], error: Optional[Exception]) -> None:
        QApplication.restoreOverrideCursor()
        if error:
            self.info_label.setText(f"Error: {error}")
            self.statusBar().showMessage(f"{name} failed", 3000)
            return
        self.lists[name].update_data(records)
        self.info_label.setText(f"{name}: {len(records)} packages")
        self.statusBar().showMessage("Done", 3000)

    def on_filter_changed(self, text: str) -> None:
        for lw in self.lists.values():
            lw.refresh(text)

    def _clear_details(self) -> None:
        self.title_label.setText("Select a package to see details.")
        self.tags_label.clear()
        self.install_btn.setEnabled(False)
        self.remove_btn.setEnabled(False)

    def on_selection_changed(self, current, previous) -> None:
        record = self._current_record()
        if not record:
            self._clear_details()
            return
        self.title_label.setText(record.name)
        tags = [f"Status: {record.status.value}", f"Source: {record.source_manager}"]
        if record.version:
            tags.append(f"Version: {record.version}")
        if record.candidate_version and record.candidate_version != record.version:
            tags.append(f"Candidate: {record.candidate_version}")
        if record.architecture:
            tags.append(f"Arch: {record.architecture}")
        if record.category:
            tags.append(f"Category: {record.category}")
        self.tags_label.setText("  |  ".join(tags))
        installed = record.status in (PackageStatus.INSTALLED, PackageStatus.UPGRADABLE)
        self.install_btn.setEnabled(not installed)
        self.remove_btn.setEnabled(installed or record.status == PackageStatus.CONFIG_FILES)

    def _confirm(self, title: str, text: str) -> bool:
        reply = QMessageBox.question(self, title, text, QMessageBox.Yes | QMessageBox.No, QMessageBox.No)
        return reply == QMessageBox.Yes

    def on_install_clicked(self) -> None:
        backend = self._current_backend()
        record = self._current_record()
        if backend is None or record is None:
            return
        if not self._confirm("Confirm Install", f"Install '{record.name}' with {backend.name}?"):
            return

        def call(b: Backend) -> List[PackageRecord]:
            b.install([record.name])
            return b.list_installed()

        self._start(backend, call, f"Installing {record.name}…")

    def on_remove_clicked(self) -> None:
        backend = self._current_backend()
        record = self._current_record()
        if backend is None or record is None:
            return
        if not self._confirm(
            "Confirm Removal",
            f"Are you sure you want to remove '{record.name}'?\n\n"
            f"Source: {backend.name}\n"
            f"This action cannot be undone.",
        ):
            return

        def call(b: Backend) -> List[PackageRecord]:
            b.remove([record.name])
            return b.list_installed()

        self._start(backend, call, f"Removing {record.name}…")


def run_gui() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = QApplication(sys.argv)
    app.setStyle("Fusion")
    palette = app.palette()
    palette.setColor(QPalette.ColorRole.Window, QColor(37, 37, 38))
    palette.setColor(QPalette.ColorRole.WindowText, QColor(220, 220, 220))
    palette.setColor(QPalette.ColorRole.Base, QColor(30, 30, 30))
    palette.setColor(QPalette.ColorRole.AlternateBase, QColor(45, 45, 48))
    palette.setColor(QPalette.ColorRole.Text, QColor(220, 220, 220))
    palette.setColor(QPalette.ColorRole.Button, QColor(45, 45, 48))
    palette.setColor(QPalette.ColorRole.ButtonText, QColor(220, 220, 220))
    palette.setColor(QPalette.ColorRole.Highlight, QColor(14, 99, 156))
    palette.setColor(QPalette.ColorRole.HighlightedText, QColor(255, 255, 255))
    app.setPalette(palette)
    app.setStyleSheet(
        """
        #titleLabel { font-size: 18px; font-weight: 600; }
        #tagsLabel { color: #bbbbbb; }
        QPushButton { padding: 8px 16px; border-radius: 6px; background-color: #0e639c; color: white; }
        QPushButton:disabled { background-color: #3c3c3c; color: #888888; }
        #deleteButton { background-color: #c42b1c; }
        #deleteButton:disabled { background-color: #3c3c3c; }
        QLineEdit { padding: 6px; border-radius: 6px; border: 1px solid #555555; }
        """
    )
    win = MainWindow()
    win.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(run_gui())
