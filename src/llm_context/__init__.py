"""llm-context: pick workspace files and bundle them as LLM prompt context."""

from .errors import ExportError, FileReadError, LLMContextError, PersistenceError, TraversalError
from .policy import ExclusionPolicy, is_non_text_file, is_structurally_excluded
from .report import Report, ReportBuilder, ReportStats, build_report
from .selection import AggregateState, Materialization, SelectionStore
from .session import CommandResult, ContextSession
from .storage import FileWorkspaceState, MemoryWorkspaceState
from .walker import TreeWalker

__all__ = [
    "AggregateState",
    "CommandResult",
    "ContextSession",
    "ExclusionPolicy",
    "ExportError",
    "FileReadError",
    "FileWorkspaceState",
    "LLMContextError",
    "Materialization",
    "MemoryWorkspaceState",
    "PersistenceError",
    "Report",
    "ReportBuilder",
    "ReportStats",
    "SelectionStore",
    "TraversalError",
    "TreeWalker",
    "build_report",
    "is_non_text_file",
    "is_structurally_excluded",
]
