# ui/table_models.py - Table models for the case list

from PyQt5 import QtCore, QtGui

from domain.models import Case
from status_service import most_severe
from ui.dialogs.common import status_color


class CaseTableModel(QtCore.QAbstractTableModel):
    """Table model for the case list (newest first, as loaded)."""

    HEADERS = [
        "Customer",
        "Email",
        "Mobile",
        "Machine",
        "Lubricant",
        "Created",
    ]

    def __init__(self, cases=None, parent=None):
        super().__init__(parent)
        self.cases: list[Case] = cases or []

    def rowCount(self, parent=None):
        return len(self.cases)

    def columnCount(self, parent=None):
        return len(self.HEADERS)

    def data(self, index, role=QtCore.Qt.DisplayRole):
        if not index.isValid():
            return None
        case = self.cases[index.row()]
        col = index.column()

        if role == QtCore.Qt.ForegroundRole:
            if col == 3:
                return status_color(case.machine_condition)
            if col == 4:
                return status_color(case.lubricant_condition)
            return None

        if role == QtCore.Qt.FontRole and col in (3, 4):
            font = QtGui.QFont()
            font.setBold(True)
            return font

        if role == QtCore.Qt.DisplayRole:
            if col == 0:
                return case.customer_name
            elif col == 1:
                return case.customer_email or ""
            elif col == 2:
                return case.customer_mobile or ""
            elif col == 3:
                return case.machine_condition
            elif col == 4:
                return case.lubricant_condition
            elif col == 5:
                return (case.created_at or "")[:10]
        return None

    def headerData(self, section, orientation, role=QtCore.Qt.DisplayRole):
        if role != QtCore.Qt.DisplayRole:
            return None
        if orientation == QtCore.Qt.Horizontal:
            return self.HEADERS[section]
        return section + 1

    def set_cases(self, cases):
        self.beginResetModel()
        self.cases = cases
        self.endResetModel()

    def get_case_id(self, row):
        if 0 <= row < len(self.cases):
            return self.cases[row].id
        return None

    def get_case_at_row(self, row):
        if 0 <= row < len(self.cases):
            return self.cases[row]
        return None


class CaseFilterProxyModel(QtCore.QSortFilterProxyModel):
    """Filter the case list by free text and by overall severity."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.text_filter = ""
        self.severity_filter = ""

    def set_text_filter(self, text: str):
        self.text_filter = (text or "").lower().strip()
        self.invalidateFilter()

    def set_severity_filter(self, severity: str):
        self.severity_filter = severity or ""
        self.invalidateFilter()

    def filterAcceptsRow(self, source_row, source_parent):
        src = self.sourceModel()
        if src is None:
            return True
        case = src.get_case_at_row(source_row)
        if case is None:
            return False

        if self.text_filter:
            haystack = " ".join(
                v for v in (case.customer_name, case.customer_email, case.customer_mobile, case.customer_address) if v
            ).lower()
            if not all(w in haystack for w in self.text_filter.split()):
                return False

        if self.severity_filter:
            if most_severe([case.machine_condition, case.lubricant_condition]) != self.severity_filter:
                return False
        return True
