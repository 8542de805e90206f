"""sourcebox - schema-driven synthetic data generation and database seeding."""

from sourcebox.catalog import list_schemas, resolve_schema
from sourcebox.config import SeedConfig
from sourcebox.dependency import DependencyGraph, resolve_order
from sourcebox.engine import CancelToken, GenerationEngine
from sourcebox.exceptions import (
    ConfigurationError,
    ConstraintUnsatisfiableError,
    CyclicDependencyError,
    EmptyParentSetError,
    ExhaustedSequenceError,
    GenerationError,
    RunCancelledError,
    SchemaError,
    SchemaIssue,
    SchemaIssueKind,
    SchemaNotFoundError,
    SinkError,
    SourceBoxError,
)
from sourcebox.loader import load_schema, parse_schema
from sourcebox.models import ColumnDefinition, ColumnType, SchemaDefinition, TableDefinition
from sourcebox.orchestrator import RunState, SeedOrchestrator, SeedRun, run_seed
from sourcebox.records import GeneratedRecord, RecordSet
from sourcebox.sinks import DryRunSink, FileSink, MySQLSink, PostgresSink, Sink

__version__ = "0.1.0"

__all__ = [
    "CancelToken",
    "ColumnDefinition",
    "ColumnType",
    "ConfigurationError",
    "ConstraintUnsatisfiableError",
    "CyclicDependencyError",
    "DependencyGraph",
    "DryRunSink",
    "EmptyParentSetError",
    "ExhaustedSequenceError",
    "FileSink",
    "GeneratedRecord",
    "GenerationEngine",
    "GenerationError",
    "MySQLSink",
    "PostgresSink",
    "RecordSet",
    "RunCancelledError",
    "RunState",
    "SchemaDefinition",
    "SchemaError",
    "SchemaIssue",
    "SchemaIssueKind",
    "SchemaNotFoundError",
    "SeedConfig",
    "SeedOrchestrator",
    "SeedRun",
    "Sink",
    "SinkError",
    "SourceBoxError",
    "TableDefinition",
    "list_schemas",
    "load_schema",
    "parse_schema",
    "resolve_order",
    "resolve_schema",
    "run_seed",
]
