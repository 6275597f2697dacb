"""Widget library for the Textual UI."""

from __future__ import annotations

from .results_pane import ResultsPane
from .status_bar import StatusBar
from .table_sidebar import TableSidebar

__all__ = ["ResultsPane", "StatusBar", "TableSidebar"]
