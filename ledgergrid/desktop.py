import sys
from datetime import date

from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtGui import QAction, QBrush, QColor, QFont, QKeySequence
from PyQt6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPushButton,
    QSpinBox,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from .core import column_name, format_amount, is_blank
from .derived import balance_tone
from .grid import Origin
from .layout import ColumnKind, LedgerFormat
from .logging_setup import configure_logging, get_logger
from .session import SessionController
from .settings import DB_PATH, LOCAL_SHEETS_DIR
from .store import DocumentSheetBackend, LocalSheetBackend, SqliteDocumentStore
from .sync import Scheduler

APP_NAME = "Ledger Grid"

log = get_logger("ledgergrid.desktop")

TONE_COLORS = {"due": "#FFA500", "settled": "#2E7D32", "overpaid": "#D32F2F"}
HEADER_COLORS = {
    ColumnKind.BALANCE: "#FFA500",
    ColumnKind.SUBTOTAL: "#4CAF50",
}
SUBTOTAL_BG = "#E8F5E9"


class _QtTimerHandle:
    def __init__(self, timer: QTimer):
        self.timer = timer

    def cancel(self):
        self.timer.stop()


class QtScheduler(Scheduler):
    """Runs debounced saves on the GUI thread."""

    def __init__(self, parent=None):
        self.parent = parent

    def call_later(self, delay, fn):
        timer = QTimer(self.parent)
        timer.setSingleShot(True)
        timer.timeout.connect(fn)
        timer.timeout.connect(timer.deleteLater)
        timer.start(int(delay * 1000))
        return _QtTimerHandle(timer)


class LedgerWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle(APP_NAME)
        self.resize(1400, 900)

        self._updating = False
        self._use_local = False
        self.session = None
        self.store = SqliteDocumentStore(DB_PATH)
        self.scheduler = QtScheduler(self)

        root = QWidget()
        self.setCentralWidget(root)
        main = QVBoxLayout(root)

        top = QHBoxLayout()
        main.addLayout(top)

        self.identity = QLineEdit("local")
        self.identity.setPlaceholderText("Account")
        self.format = QComboBox()
        self.format.addItems([f.value for f in LedgerFormat])
        today = date.today()
        self.month = QComboBox()
        self.month.addItems([f"{m:02d}" for m in range(1, 13)])
        self.month.setCurrentIndex(today.month - 1)
        self.year = QSpinBox()
        self.year.setRange(2000, 2100)
        self.year.setValue(today.year)

        self.btn_open = QPushButton("Open")
        self.btn_open.clicked.connect(self.open_sheet)
        self.btn_storage = QPushButton("Storage: documents")
        self.btn_storage.clicked.connect(self.toggle_storage)
        self.btn_save = QPushButton("Save Now (Ctrl+S)")
        self.btn_save.clicked.connect(self.save_now)
        self.status = QLabel("Ready.")

        top.addWidget(QLabel("Account:"))
        top.addWidget(self.identity, 2)
        top.addWidget(QLabel("Format:"))
        top.addWidget(self.format)
        top.addWidget(QLabel("Month:"))
        top.addWidget(self.month)
        top.addWidget(self.year)
        top.addWidget(self.btn_open)
        top.addWidget(self.btn_storage)
        top.addWidget(self.btn_save)
        top.addWidget(self.status, 3)

        hints = QHBoxLayout()
        main.addLayout(hints)
        self.hint_label = QLabel("Suggestions:")
        self.btn_no_payment = QPushButton("-")
        self.btn_no_payment.clicked.connect(lambda: self.apply_suggestion("no_payment"))
        self.btn_carry = QPushButton("")
        self.btn_carry.clicked.connect(lambda: self.apply_suggestion("carry_forward"))
        self.totals_label = QLabel("")
        hints.addWidget(self.hint_label)
        hints.addWidget(self.btn_no_payment)
        hints.addWidget(self.btn_carry)
        hints.addStretch(1)
        hints.addWidget(self.totals_label)
        self.show_suggestions(None)

        self.table = QTableWidget(0, 0)
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.table.setEditTriggers(
            QAbstractItemView.EditTrigger.DoubleClicked
            | QAbstractItemView.EditTrigger.EditKeyPressed
            | QAbstractItemView.EditTrigger.AnyKeyPressed
        )
        self.table.itemChanged.connect(self.on_item_changed)
        self.table.currentCellChanged.connect(self.on_current_cell_changed)
        main.addWidget(self.table, 1)

        self.make_shortcuts()
        self.open_sheet()

    def set_status(self, msg: str):
        self.status.setText(msg)

    def make_shortcuts(self):
        mapping = {
            "Ctrl+S": self.save_now,
            "Alt+Up": lambda: self.move_current_row(-1),
            "Alt+Down": lambda: self.move_current_row(1),
            "Ctrl+-": lambda: self.apply_suggestion("no_payment"),
            "Ctrl+Return": lambda: self.apply_suggestion("carry_forward"),
            "Ctrl+Delete": self.clear_current_row,
        }
        for key, fn in mapping.items():
            act = QAction(self)
            act.setShortcut(QKeySequence(key))
            act.triggered.connect(fn)
            self.addAction(act)

    def backend(self):
        if self._use_local:
            return LocalSheetBackend(LOCAL_SHEETS_DIR)
        return DocumentSheetBackend(self.store, self.identity.text().strip() or "local")

    def toggle_storage(self):
        self._use_local = not self._use_local
        self.btn_storage.setText("Storage: local file" if self._use_local else "Storage: documents")
        self.open_sheet()

    def open_sheet(self):
        if self.session is not None:
            self.session.close()
        self.session = SessionController(
            self.format.currentText(),
            self.year.value(),
            self.month.currentIndex(),
            self.identity.text().strip() or "local",
            self.backend(),
            scheduler=self.scheduler,
            on_status=self.set_status,
        )
        self.session.open()
        log.info("Showing %s (%s)", self.session.sheet_id, self.session.backend.label)
        self.session.grid.subscribe(self.on_grid_changed)
        self.populate_table()

    def populate_table(self):
        layout = self.session.layout
        self._updating = True
        self.table.clear()
        self.table.setColumnCount(len(layout))
        self.table.setRowCount(self.session.grid.rows)
        for c, spec in enumerate(layout.columns):
            header = QTableWidgetItem(f"{spec.label}\n{column_name(c)}")
            color = HEADER_COLORS.get(spec.kind, "#87CEEB")
            header.setBackground(QBrush(QColor(color)))
            self.table.setHorizontalHeaderItem(c, header)
            self.table.setColumnWidth(c, spec.width)
        for r, row in enumerate(self.session.rows()):
            for c, value in enumerate(row):
                self.table.setItem(r, c, self.make_item(c, value))
        self._updating = False
        self.refresh_totals()

    def make_item(self, col: int, value) -> QTableWidgetItem:
        spec = self.session.layout[col]
        text = format_amount(value) if spec.input_type == "numeric" else ("" if is_blank(value) else str(value))
        item = QTableWidgetItem(text)
        if spec.read_only:
            item.setFlags(item.flags() & ~Qt.ItemFlag.ItemIsEditable)
            bold = QFont()
            bold.setBold(True)
            item.setFont(bold)
        if spec.kind is ColumnKind.SUBTOTAL and not is_blank(value):
            item.setForeground(QBrush(QColor(TONE_COLORS["settled"])))
            item.setBackground(QBrush(QColor(SUBTOTAL_BG)))
        if spec.kind is ColumnKind.BALANCE:
            tone = balance_tone(value)
            if tone:
                item.setForeground(QBrush(QColor(TONE_COLORS[tone])))
        return item

    def refresh_row(self, row: int):
        self._updating = True
        for c, value in enumerate(self.session.grid.row(row)):
            self.table.setItem(row, c, self.make_item(c, value))
        self._updating = False

    def refresh_totals(self):
        layout = self.session.layout
        totals = self.session.column_totals
        collected = sum(totals[c] for c in layout.period_cols)
        self.totals_label.setText(
            f"Collected: {format_amount(collected)}   Outstanding: {format_amount(totals[layout.balance_col])}"
        )

    def on_grid_changed(self, row, col, value, origin):
        if origin is Origin.LOAD or col < 0:
            self.refresh_row(row)
            return
        item = self.table.item(row, col)
        self._updating = True
        if origin is Origin.USER and item is not None:
            # The edited item is still inside its itemChanged signal; only retext it.
            item.setText(self.make_item(col, value).text())
        else:
            self.table.setItem(row, col, self.make_item(col, value))
        self._updating = False
        self.refresh_totals()

    def on_item_changed(self, item: QTableWidgetItem):
        if self._updating or self.session is None:
            return
        r, c = item.row(), item.column()
        if not self.session.edit(r, c, item.text().strip()):
            self._updating = True
            item.setText(self.make_item(c, self.session.grid.get(r, c)).text())
            self._updating = False
            self.set_status(f"Cell {column_name(c)}{r + 1} is read-only.")

    def on_current_cell_changed(self, row, col, _prev_row, _prev_col):
        if self.session is None or row < 0 or col < 0:
            return
        self.show_suggestions(self.session.suggestions(row, col))

    def show_suggestions(self, found):
        visible = found is not None
        for w in (self.hint_label, self.btn_no_payment, self.btn_carry):
            w.setVisible(visible)
        if visible:
            self.btn_carry.setText(format_amount(found.carry_forward) or "0")

    def apply_suggestion(self, choice: str):
        r, c = self.table.currentRow(), self.table.currentColumn()
        if self.session is None or r < 0 or c < 0:
            return
        if self.session.apply_suggestion(r, c, choice):
            self.table.setCurrentCell(r, min(c + 1, self.table.columnCount() - 1))

    def move_current_row(self, delta: int):
        r, c = self.table.currentRow(), self.table.currentColumn()
        new_r = r + delta
        if self.session is None or r < 0 or new_r < 0 or new_r >= self.table.rowCount():
            return
        if self.session.move_row(r, new_r):
            self.table.setCurrentCell(new_r, c)

    def clear_current_row(self):
        r = self.table.currentRow()
        if self.session is None or r < 0:
            return
        self.session.clear_row(r)

    def save_now(self):
        if self.session is None:
            return
        self.session.save_now()

    def closeEvent(self, event):
        if self.session is not None:
            self.session.close()
        super().closeEvent(event)


def main():
    configure_logging()
    app = QApplication(sys.argv)
    w = LedgerWindow()
    w.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
