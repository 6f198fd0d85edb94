"""
FinOps Workbench MCP Server - query composition and result exploration for
Cost and Usage Report data.

This package provides the workbench engine (column catalog, select-list
toggling, client-side filtering, sorting and profiling of results) and an MCP
server that exposes it to AI assistants.
"""

__version__ = "0.1.0"
__author__ = "FinOps Workbench"

from .catalog import DEFAULT_CATALOG, ColumnCatalog
from .explorer import ResultExplorer
from .membership import resolve_membership
from .mutator import toggle_column
from .results import FilterSpec, QueryResult
from .workbench_client import WorkbenchClient

__all__ = [
    "DEFAULT_CATALOG",
    "ColumnCatalog",
    "FilterSpec",
    "QueryResult",
    "ResultExplorer",
    "WorkbenchClient",
    "resolve_membership",
    "toggle_column",
]
