"""
Qt models for the SIP Span viewer: the message grid and the DN grid.
"""
from PySide6.QtCore import Qt, QAbstractTableModel, QModelIndex
from PySide6.QtGui import QBrush, QColor
from typing import List, Optional, Any

from .bookmarks import BookmarkSet
from .correlation import palette_color
from .deltas import FilterState, VisibleRow, apply_filters
from .dn_grid import DnGrid, GridRow
from .records import RecordKind
from .utils import delta_class, format_delta, short_conn_id

IdentityRole = Qt.UserRole
BookmarkRole = Qt.UserRole + 1
DeltaClassRole = Qt.UserRole + 2

TYPE_BADGES = {
    RecordKind.SIP: "SIP",
    RecordKind.EVENT: "EVT",
    RecordKind.REQUEST: "REQ",
}


class MessageTableModel(QAbstractTableModel):
    """Flat model of the visible SIP/Event/Request rows for the current filters."""
    HEADERS = [
        "Time",
        "Delta",
        "Type",
        "Message",
        "From / DN",
        "To / ODN",
        "CSeq / RefID",
        "CID / ConnID",
    ]

    def __init__(self, parent=None):
        super().__init__(parent)
        self._result = None
        self._filters = FilterState()
        self._rows: List[VisibleRow] = []
        self._bookmarks: Optional[BookmarkSet] = None

    def load_result(self, result, filters: Optional[FilterState] = None):
        """Show a fresh ParseResult; filters default to show-all."""
        self._result = result
        self.set_filters(filters or FilterState())

    def set_filters(self, filters: FilterState):
        """Recompute the visible rows and their cross-filter deltas from scratch."""
        self.beginResetModel()
        self._filters = filters
        records = self._result.records if self._result else []
        self._rows = apply_filters(records, filters)
        self.endResetModel()

    @property
    def filters(self) -> FilterState:
        return self._filters

    def set_bookmarks(self, bookmarks: Optional[BookmarkSet]):
        self._bookmarks = bookmarks
        if self._rows:
            self.dataChanged.emit(self.index(0, 0), self.index(len(self._rows) - 1, len(self.HEADERS) - 1))

    def visible_rows(self) -> List[VisibleRow]:
        return list(self._rows)

    def row_at(self, row: int) -> Optional[VisibleRow]:
        if 0 <= row < len(self._rows):
            return self._rows[row]
        return None

    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(self._rows)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:
        return len(self.HEADERS)

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.DisplayRole) -> Any:
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return None

    def _display(self, visible: VisibleRow, column: int) -> str:
        msg = visible.record
        if column == 0:
            return msg.time_str
        if column == 1:
            return format_delta(visible.cross_delta)
        if column == 2:
            return TYPE_BADGES[msg.kind]
        if msg.kind == RecordKind.SIP:
            if column == 3:
                return f"{msg.direction.value} {msg.method}"
            if column == 4:
                return msg.from_uri or "—"
            if column == 5:
                return msg.to_uri or "—"
            if column == 6:
                return f"{msg.cseq} {msg.cseq_method}" if msg.cseq is not None else "—"
            return msg.call_id or "—"
        if column == 3:
            return f"{msg.direction.value} {msg.message_type}"
        if column == 4:
            return msg.dn or "—"
        if column == 5:
            return msg.odn or "—"
        if column == 6:
            return msg.ref_id or "—"
        return short_conn_id(msg.conn_id)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole) -> Any:
        if not index.isValid() or not (0 <= index.row() < len(self._rows)):
            return None
        visible = self._rows[index.row()]
        msg = visible.record

        if role == Qt.DisplayRole:
            return self._display(visible, index.column())
        if role == Qt.ToolTipRole:
            return msg.raw_line
        if role == IdentityRole:
            return msg.identity
        if role == BookmarkRole:
            return self._bookmarks is not None and msg.identity in self._bookmarks
        if role == DeltaClassRole:
            return delta_class(visible.cross_delta)
        if role == Qt.ForegroundRole and index.column() == 7:
            slot = self._result.index.slot_for(msg) if self._result else None
            if slot is not None:
                return QBrush(QColor(palette_color(slot)))
        return None


class DnGridModel(QAbstractTableModel):
    """Events/Requests with one column per Device Number."""
    FIXED_HEADERS = ["Time", "Δ prev", "Δ req"]

    def __init__(self, grid: Optional[DnGrid] = None, parent=None):
        super().__init__(parent)
        self._grid = DnGrid()
        self._layout = []
        self._bookmarks: Optional[BookmarkSet] = None
        if grid is not None:
            self.set_grid(grid)

    def set_grid(self, grid: DnGrid):
        self.beginResetModel()
        self._grid = grid
        self._layout = grid.column_layout()
        self.endResetModel()

    def set_bookmarks(self, bookmarks: Optional[BookmarkSet]):
        self._bookmarks = bookmarks
        if self._grid.rows:
            self.dataChanged.emit(self.index(0, 0), self.index(len(self._grid.rows) - 1, self.columnCount() - 1))

    def row_at(self, row: int) -> Optional[GridRow]:
        if 0 <= row < len(self._grid.rows):
            return self._grid.rows[row]
        return None

    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(self._grid.rows)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:
        return len(self.FIXED_HEADERS) + len(self._layout)

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.DisplayRole) -> Any:
        if orientation != Qt.Horizontal or role != Qt.DisplayRole:
            return None
        if section < len(self.FIXED_HEADERS):
            return self.FIXED_HEADERS[section]
        return self._layout[section - len(self.FIXED_HEADERS)].label

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole) -> Any:
        if not index.isValid():
            return None
        row = self.row_at(index.row())
        if row is None:
            return None
        col = index.column()

        if role == IdentityRole:
            return row.identity
        if role == BookmarkRole:
            return self._bookmarks is not None and row.identity in self._bookmarks
        if role == Qt.ToolTipRole:
            return row.raw_line

        if role == Qt.DisplayRole:
            if col == 0:
                return row.time_str
            if col == 1:
                return format_delta(row.delta_from_previous)
            if col == 2:
                return format_delta(row.delta_from_matching_request) if row.kind == RecordKind.EVENT else ""
            target = self._grid.column_for(row)
            if target is not None and col - len(self.FIXED_HEADERS) == target:
                return row.message_type
            return ""

        if role == Qt.BackgroundRole and col >= len(self.FIXED_HEADERS):
            target = self._grid.column_for(row)
            if target is not None and col - len(self.FIXED_HEADERS) == target:
                color = QColor(palette_color(target))
                color.setAlpha(60 if row.kind == RecordKind.REQUEST else 110)
                return QBrush(color)
        return None
