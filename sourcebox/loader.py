"""
Schema loader: parses JSON schema documents into a validated SchemaDefinition.

Validation runs in two passes. The structural pass (pydantic document models,
unknown keys rejected) reports every malformed field at once. The semantic
pass walks the whole document collecting every inconsistency before raising,
so a user sees every problem in one run.

Example usage:

    >>> schema = load_schema("schemas/retail-orders.json")
    >>> print(f"Loaded schema: {schema.name} with {len(schema.tables)} tables")
"""

from __future__ import annotations

import json
import logging
import math
import re
import string
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sourcebox.exceptions import SchemaError, SchemaIssue, SchemaIssueKind
from sourcebox.generators.derived import compile_expression, template_fields
from sourcebox.generators.faker_generator import COLUMN_PROVIDERS, provider_exists
from sourcebox.models import (
    Cardinality,
    ColumnConstraints,
    ColumnDefinition,
    ColumnType,
    DerivedSpec,
    Distribution,
    EnumerationSpec,
    FakerSpec,
    ForeignKeyAction,
    ForeignKeyReferenceSpec,
    GeneratorSpec,
    IndexDefinition,
    Relationship,
    ScalarRangeSpec,
    SchemaDefinition,
    SchemaMetadata,
    SelectionPolicy,
    SequenceOrder,
    TableDefinition,
    UniqueSequenceSpec,
    ValidationRule,
)

logger = logging.getLogger(__name__)

VALID_DATABASE_TYPES = ("mysql", "postgres")
VALID_REFERENTIAL_ACTIONS = ("CASCADE", "SET NULL", "RESTRICT", "NO ACTION")

# Fallback ranges when a column declares no generator (fixed dates keep runs
# reproducible regardless of when they happen).
DEFAULT_INT_RANGE = (1, 1000)
DEFAULT_DECIMAL_RANGE = (Decimal("0"), Decimal("10000"))
DEFAULT_DATE_RANGE = (date(2020, 1, 1), date(2024, 12, 31))
DEFAULT_DATETIME_RANGE = (datetime(2020, 1, 1), datetime(2024, 12, 31, 23, 59, 59))
DEFAULT_TEXT_LENGTH = 50

TYPE_ALIASES: dict[str, ColumnType] = {
    "string": ColumnType.STRING,
    "str": ColumnType.STRING,
    "text": ColumnType.STRING,
    "varchar": ColumnType.STRING,
    "char": ColumnType.STRING,
    "character": ColumnType.STRING,
    "character varying": ColumnType.STRING,
    "tinytext": ColumnType.STRING,
    "mediumtext": ColumnType.STRING,
    "longtext": ColumnType.STRING,
    "uuid": ColumnType.STRING,
    "integer": ColumnType.INTEGER,
    "int": ColumnType.INTEGER,
    "tinyint": ColumnType.INTEGER,
    "smallint": ColumnType.INTEGER,
    "mediumint": ColumnType.INTEGER,
    "bigint": ColumnType.INTEGER,
    "serial": ColumnType.INTEGER,
    "bigserial": ColumnType.INTEGER,
    "decimal": ColumnType.DECIMAL,
    "numeric": ColumnType.DECIMAL,
    "float": ColumnType.DECIMAL,
    "double": ColumnType.DECIMAL,
    "double precision": ColumnType.DECIMAL,
    "real": ColumnType.DECIMAL,
    "date": ColumnType.DATE,
    "datetime": ColumnType.DATETIME,
    "timestamp": ColumnType.DATETIME,
    "timestamptz": ColumnType.DATETIME,
    "timestamp with time zone": ColumnType.DATETIME,
    "timestamp without time zone": ColumnType.DATETIME,
    "boolean": ColumnType.BOOLEAN,
    "bool": ColumnType.BOOLEAN,
    "enum": ColumnType.ENUM,
    "foreign_key": ColumnType.FOREIGN_KEY,
}

RANGE_GENERATORS = {
    "range",
    "int_range",
    "decimal_range",
    "float_range",
    "date_range",
    "datetime_range",
}
ENUM_GENERATORS = {"enum", "choice", "weighted_choice"}
SEQUENCE_GENERATORS = {"sequence", "unique_sequence", "auto_increment"}
REFERENCE_GENERATORS = {"foreign_key", "reference"}
DERIVED_GENERATORS = {"derived", "expression", "template"}

_TYPE_PATTERN = re.compile(r"^\s*([a-z_ ]+?)\s*(?:\((.*)\))?\s*(?:unsigned)?\s*$", re.IGNORECASE)
_QUOTED_VALUE = re.compile(r"'((?:[^']|'')*)'")


# Document models: the raw JSON shape, strict about unknown keys.


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ForeignKeyDocument(_Document):
    table: str = ""
    column: str = ""
    on_delete: str = "RESTRICT"
    on_update: str = "RESTRICT"


class ConstraintsDocument(_Document):
    min: Any = None
    max: Any = None
    values: list[Any] | None = None


class ColumnDocument(_Document):
    name: str = ""
    type: str = ""
    nullable: bool = False
    primary_key: bool = False
    auto_increment: bool = False
    default: Any = None
    unique: bool = False
    description: str = ""
    generator: str = ""
    generator_params: dict[str, Any] = Field(default_factory=dict)
    foreign_key: ForeignKeyDocument | None = None
    constraints: ConstraintsDocument | None = None
    null_rate: float = 0.0


class IndexDocument(_Document):
    name: str = ""
    columns: list[str] = Field(default_factory=list)
    type: str = ""
    unique: bool = False


class TableDocument(_Document):
    name: str = ""
    description: str = ""
    record_count: int = 0
    columns: list[ColumnDocument] = Field(default_factory=list)
    indexes: list[IndexDocument] = Field(default_factory=list)


class MetadataDocument(_Document):
    industry: str = ""
    tags: list[str] = Field(default_factory=list)
    total_records: int = 0
    complexity_tier: int = 0


class RelationshipDocument(_Document):
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    relationship_type: str = "one_to_many"
    description: str = ""


class ValidationRuleDocument(_Document):
    rule: str
    description: str = ""
    severity: str = ""


class SchemaDocument(_Document):
    schema_version: str = ""
    name: str = ""
    description: str = ""
    author: str = ""
    version: str = ""
    database_type: list[str] | None = None
    metadata: MetadataDocument = Field(default_factory=MetadataDocument)
    tables: list[TableDocument] | None = None
    relationships: list[RelationshipDocument] = Field(default_factory=list)
    generation_order: list[str] = Field(default_factory=list)
    validation_rules: list[ValidationRuleDocument] = Field(default_factory=list)


def parse_column_type(declared: str) -> tuple[ColumnType | None, list[str]]:
    """
    Map a declared type spelling to a semantic ColumnType.

    Args:
        declared: Type as written in the schema (e.g. ``varchar(255)``)

    Returns:
        Tuple of (ColumnType or None if unknown, type arguments)

    Example:
        >>> parse_column_type("decimal(10,2)")
        (<ColumnType.DECIMAL: 'decimal'>, ['10', '2'])
    """
    match = _TYPE_PATTERN.match(declared)
    if not match:
        return None, []
    base = " ".join(match.group(1).lower().split())
    raw_args = match.group(2)
    column_type = TYPE_ALIASES.get(base)
    if raw_args is None:
        return column_type, []
    if column_type is ColumnType.ENUM:
        return column_type, [v.replace("''", "'") for v in _QUOTED_VALUE.findall(raw_args)]
    return column_type, [arg.strip() for arg in raw_args.split(",")]


def coerce_value(value: Any, column_type: ColumnType) -> Any:
    """
    Convert a JSON value to the Python type used for a column.

    Raises:
        ValueError: If the value cannot represent the column type
    """
    if value is None:
        return None
    if column_type is ColumnType.INTEGER:
        if isinstance(value, bool):
            raise ValueError(f"expected integer, got {value!r}")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"expected integer, got {value!r}")
        return int(value)
    if column_type is ColumnType.DECIMAL:
        if isinstance(value, bool):
            raise ValueError(f"expected number, got {value!r}")
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"expected number, got {value!r}") from None
        if not result.is_finite():
            raise ValueError(f"expected a finite number, got {value!r}")
        return result
    if column_type is ColumnType.DATE:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value))
    if column_type is ColumnType.DATETIME:
        if isinstance(value, datetime):
            return value
        return datetime.fromisoformat(str(value))
    if column_type is ColumnType.BOOLEAN:
        if not isinstance(value, bool):
            raise ValueError(f"expected boolean, got {value!r}")
        return value
    return value


def _format_loc(loc: tuple[Any, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


class _TableContext:
    """Working state for one table during semantic validation."""

    def __init__(self, index: int, doc: TableDocument):
        self.index = index
        self.doc = doc
        self.name = doc.name
        self.path = f"tables[{index}]"
        self.column_types: dict[str, ColumnType | None] = {}
        self.type_args: dict[str, list[str]] = {}
        self.unique_columns: set[str] = set()
        self.cardinality: dict[str, Cardinality] = {}


class SchemaLoader:
    """Parse and validate schema documents."""

    def __init__(self):
        self._issues: list[SchemaIssue] = []

    def load_path(self, path: str | Path) -> SchemaDefinition:
        """
        Load and validate a schema from a file.

        Args:
            path: Path to a schema JSON file

        Returns:
            Validated SchemaDefinition

        Raises:
            FileNotFoundError: If the file doesn't exist
            SchemaError: If the document is malformed or inconsistent
        """
        schema_path = Path(path)
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")
        return self.load_bytes(schema_path.read_bytes(), source=str(schema_path))

    def load_bytes(self, raw: bytes | str, source: str | None = None) -> SchemaDefinition:
        """
        Parse and validate raw schema input.

        Args:
            raw: JSON document as bytes or text
            source: Where the document came from, for error messages

        Returns:
            Validated SchemaDefinition

        Raises:
            SchemaError: With every issue found, if any
        """
        self._issues = []
        document = self._parse_document(raw)
        if document is None:
            raise SchemaError(self._issues, source=source)

        schema = self._build_schema(document)
        if self._issues:
            raise SchemaError(self._issues, source=source)

        logger.debug(
            f"Loaded schema '{schema.name}' with {len(schema.tables)} tables"
            + (f" from {source}" if source else "")
        )
        return schema

    # Structural pass

    def _parse_document(self, raw: bytes | str) -> SchemaDocument | None:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                self._add(SchemaIssueKind.MALFORMED_INPUT, f"input is not UTF-8: {e}")
                return None

        if not raw.strip():
            self._add(SchemaIssueKind.MALFORMED_INPUT, "input is empty")
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            self._add(
                SchemaIssueKind.MALFORMED_INPUT,
                f"invalid JSON at line {e.lineno} column {e.colno}: {e.msg}",
            )
            return None

        if not isinstance(data, dict):
            self._add(SchemaIssueKind.MALFORMED_INPUT, "top-level value must be an object")
            return None

        try:
            return SchemaDocument.model_validate(data)
        except ValidationError as e:
            for error in e.errors():
                path = _format_loc(error["loc"])
                if error["type"] == "missing":
                    self._add(SchemaIssueKind.MISSING_FIELD, "field is required", path)
                elif error["type"] == "extra_forbidden":
                    self._add(SchemaIssueKind.MALFORMED_INPUT, "unknown field", path)
                else:
                    self._add(SchemaIssueKind.MALFORMED_INPUT, error["msg"], path)
            return None

    # Semantic pass

    def _build_schema(self, doc: SchemaDocument) -> SchemaDefinition:
        if not doc.name:
            self._add(SchemaIssueKind.MISSING_FIELD, "schema name is required", "name")

        database_types = tuple(doc.database_type or VALID_DATABASE_TYPES)
        if doc.database_type is not None and not doc.database_type:
            self._add(
                SchemaIssueKind.MISSING_FIELD,
                "database_type must list at least one database",
                "database_type",
            )
        for i, db_type in enumerate(database_types):
            if db_type not in VALID_DATABASE_TYPES:
                self._add(
                    SchemaIssueKind.INVALID_DATABASE_TYPE,
                    f"invalid database_type '{db_type}': must be \"mysql\" or \"postgres\"",
                    f"database_type[{i}]",
                )

        if doc.tables is None:
            self._add(SchemaIssueKind.MISSING_FIELD, "tables field is required", "tables")
            table_docs: list[TableDocument] = []
        else:
            table_docs = doc.tables

        contexts = self._index_tables(table_docs)
        by_name = {ctx.name: ctx for ctx in contexts}

        for ctx in contexts:
            self._check_table_shape(ctx)
        self._apply_relationships(doc.relationships, by_name)

        tables = [self._build_table(ctx, by_name) for ctx in contexts]

        for i, name in enumerate(doc.generation_order):
            if name not in by_name:
                self._add(
                    SchemaIssueKind.UNKNOWN_TABLE,
                    f"generation_order names table '{name}' which does not exist in schema",
                    f"generation_order[{i}]",
                    table=name,
                )

        return SchemaDefinition(
            name=doc.name,
            tables=tuple(tables),
            description=doc.description,
            version=doc.version,
            schema_version=doc.schema_version,
            author=doc.author,
            database_types=database_types,
            metadata=SchemaMetadata(
                industry=doc.metadata.industry,
                tags=tuple(doc.metadata.tags),
                total_records=doc.metadata.total_records,
                complexity_tier=doc.metadata.complexity_tier,
            ),
            generation_order=tuple(doc.generation_order),
            validation_rules=tuple(
                ValidationRule(rule=r.rule, description=r.description, severity=r.severity)
                for r in doc.validation_rules
            ),
        )

    def _index_tables(self, table_docs: list[TableDocument]) -> list[_TableContext]:
        contexts = []
        seen: set[str] = set()
        for i, table_doc in enumerate(table_docs):
            ctx = _TableContext(i, table_doc)
            if not table_doc.name:
                self._add(
                    SchemaIssueKind.MISSING_FIELD,
                    "table name is required",
                    f"{ctx.path}.name",
                )
                continue
            if table_doc.name in seen:
                self._add(
                    SchemaIssueKind.DUPLICATE_TABLE_NAME,
                    f"table '{table_doc.name}' is defined more than once",
                    f"{ctx.path}.name",
                    table=table_doc.name,
                )
                continue
            seen.add(table_doc.name)
            contexts.append(ctx)
        return contexts

    def _check_table_shape(self, ctx: _TableContext) -> None:
        doc = ctx.doc
        if doc.record_count < 0:
            self._add(
                SchemaIssueKind.INVALID_TABLE_DEFINITION,
                f"record_count must not be negative, got {doc.record_count}",
                f"{ctx.path}.record_count",
                table=ctx.name,
            )

        if not doc.columns:
            self._add(
                SchemaIssueKind.MISSING_FIELD,
                "columns are required",
                f"{ctx.path}.columns",
                table=ctx.name,
            )
            return

        pk_count = sum(1 for col in doc.columns if col.primary_key)
        if pk_count != 1:
            found = f", found {pk_count}" if pk_count else ""
            self._add(
                SchemaIssueKind.INVALID_PRIMARY_KEY,
                f"must have exactly one primary key{found}",
                f"{ctx.path}.columns",
                table=ctx.name,
            )

        seen: set[str] = set()
        for j, col in enumerate(doc.columns):
            col_path = f"{ctx.path}.columns[{j}]"
            if not col.name:
                self._add(
                    SchemaIssueKind.MISSING_FIELD,
                    "column name is required",
                    f"{col_path}.name",
                    table=ctx.name,
                )
                continue
            if col.name in seen:
                self._add(
                    SchemaIssueKind.DUPLICATE_COLUMN_NAME,
                    f"column '{col.name}' is defined more than once",
                    f"{col_path}.name",
                    table=ctx.name,
                    column=col.name,
                )
                continue
            seen.add(col.name)

            if not col.type:
                self._add(
                    SchemaIssueKind.MISSING_FIELD,
                    "column type is required",
                    f"{col_path}.type",
                    table=ctx.name,
                    column=col.name,
                )
                ctx.column_types[col.name] = None
                continue

            column_type, args = parse_column_type(col.type)
            if column_type is None:
                self._add(
                    SchemaIssueKind.UNKNOWN_COLUMN_TYPE,
                    f"unknown column type '{col.type}'",
                    f"{col_path}.type",
                    table=ctx.name,
                    column=col.name,
                )
            ctx.column_types[col.name] = column_type
            ctx.type_args[col.name] = args
            if col.unique or col.primary_key:
                ctx.unique_columns.add(col.name)

        for k, index in enumerate(doc.indexes):
            missing = [c for c in index.columns if c not in seen]
            if not index.columns or missing:
                detail = ", ".join(missing) if missing else "no columns listed"
                self._add(
                    SchemaIssueKind.INVALID_TABLE_DEFINITION,
                    f"index '{index.name}' covers unknown columns: {detail}",
                    f"{ctx.path}.indexes[{k}]",
                    table=ctx.name,
                )
            elif index.unique and len(index.columns) == 1:
                ctx.unique_columns.add(index.columns[0])

    def _apply_relationships(
        self, relationships: list[RelationshipDocument], by_name: dict[str, _TableContext]
    ) -> None:
        """Check documentation-level relationships and pick up cardinality hints."""
        for i, rel in enumerate(relationships):
            path = f"relationships[{i}]"
            ok = True
            for table_name, column_name, side in (
                (rel.from_table, rel.from_column, "from"),
                (rel.to_table, rel.to_column, "to"),
            ):
                ctx = by_name.get(table_name)
                if ctx is None:
                    self._add(
                        SchemaIssueKind.UNKNOWN_TABLE,
                        f"relationship {side}_table '{table_name}' does not exist in schema",
                        f"{path}.{side}_table",
                        table=table_name,
                    )
                    ok = False
                elif column_name not in ctx.column_types:
                    self._add(
                        SchemaIssueKind.DANGLING_FOREIGN_KEY,
                        f"relationship {side}_column '{column_name}' does not exist "
                        f"in table '{table_name}'",
                        f"{path}.{side}_column",
                        table=table_name,
                        column=column_name,
                    )
                    ok = False
            if not ok:
                continue

            kind = rel.relationship_type.lower().replace("-", "_")
            if kind == "one_to_one":
                by_name[rel.from_table].cardinality[rel.from_column] = Cardinality.ONE_TO_ONE
                by_name[rel.from_table].unique_columns.add(rel.from_column)

    def _build_table(
        self, ctx: _TableContext, by_name: dict[str, _TableContext]
    ) -> TableDefinition:
        columns: list[ColumnDefinition] = []
        relationships: list[Relationship] = []
        earlier: list[str] = []
        seen: set[str] = set()

        for j, col_doc in enumerate(ctx.doc.columns):
            if not col_doc.name or col_doc.name in seen:
                continue
            seen.add(col_doc.name)
            col_path = f"{ctx.path}.columns[{j}]"

            relationship = None
            if col_doc.foreign_key is not None:
                relationship = self._build_relationship(ctx, col_doc, col_path, by_name)
                if relationship is not None:
                    relationships.append(relationship)
            elif ctx.column_types.get(col_doc.name) is ColumnType.FOREIGN_KEY:
                self._add(
                    SchemaIssueKind.MISSING_FIELD,
                    "foreign_key column needs a 'foreign_key' object",
                    f"{col_path}.foreign_key",
                    table=ctx.name,
                    column=col_doc.name,
                )

            column = self._build_column(ctx, col_doc, col_path, relationship, by_name, earlier)
            if column is not None:
                columns.append(column)
            earlier.append(col_doc.name)

        indexes = tuple(
            IndexDefinition(
                name=idx.name or f"{ctx.name}_{'_'.join(idx.columns)}_idx",
                columns=tuple(idx.columns),
                unique=idx.unique,
                index_type=idx.type,
            )
            for idx in ctx.doc.indexes
        )

        return TableDefinition(
            name=ctx.name,
            columns=tuple(columns),
            relationships=tuple(relationships),
            record_count=max(ctx.doc.record_count, 0),
            indexes=indexes,
            description=ctx.doc.description,
        )

    def _build_relationship(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        by_name: dict[str, _TableContext],
    ) -> Relationship | None:
        fk = col_doc.foreign_key
        fk_path = f"{col_path}.foreign_key"
        valid = True

        for action, label in ((fk.on_delete, "on_delete"), (fk.on_update, "on_update")):
            if action.upper() not in VALID_REFERENTIAL_ACTIONS:
                self._add(
                    SchemaIssueKind.INVALID_REFERENTIAL_ACTION,
                    f"invalid {label} action '{action}': must be one of: "
                    + ", ".join(VALID_REFERENTIAL_ACTIONS),
                    f"{fk_path}.{label}",
                    table=ctx.name,
                    column=col_doc.name,
                )
                valid = False

        target = by_name.get(fk.table)
        if target is None:
            self._add(
                SchemaIssueKind.DANGLING_FOREIGN_KEY,
                f"foreign key references table '{fk.table}' which does not exist in schema",
                f"{fk_path}.table",
                table=ctx.name,
                column=col_doc.name,
            )
            return None

        target_column = fk.column
        if not target_column:
            pks = [c.name for c in target.doc.columns if c.primary_key]
            target_column = pks[0] if len(pks) == 1 else ""
        if target_column not in target.column_types:
            self._add(
                SchemaIssueKind.DANGLING_FOREIGN_KEY,
                f"foreign key references column '{fk.column}' which does not exist "
                f"in table '{fk.table}'",
                f"{fk_path}.column",
                table=ctx.name,
                column=col_doc.name,
            )
            return None
        if target_column not in target.unique_columns:
            self._add(
                SchemaIssueKind.DANGLING_FOREIGN_KEY,
                f"foreign key target '{fk.table}.{target_column}' must be a primary "
                f"or unique key",
                f"{fk_path}.column",
                table=ctx.name,
                column=col_doc.name,
            )
            return None

        if not valid:
            return None
        return Relationship(
            source_column=col_doc.name,
            target_table=fk.table,
            target_column=target_column,
            cardinality=ctx.cardinality.get(col_doc.name, Cardinality.ONE_TO_MANY),
            actions=ForeignKeyAction(
                on_delete=fk.on_delete.upper(), on_update=fk.on_update.upper()
            ),
        )

    def _build_column(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        relationship: Relationship | None,
        by_name: dict[str, _TableContext],
        earlier: list[str],
    ) -> ColumnDefinition | None:
        declared_type = ctx.column_types.get(col_doc.name)
        if declared_type is None:
            return None

        sql_type = col_doc.type
        value_type = declared_type
        if relationship is not None:
            target_ctx = by_name[relationship.target_table]
            target_type = target_ctx.column_types.get(relationship.target_column)
            if declared_type is ColumnType.FOREIGN_KEY:
                target_doc = next(
                    c for c in target_ctx.doc.columns if c.name == relationship.target_column
                )
                sql_type = target_doc.type
                value_type = target_type or ColumnType.INTEGER
        elif declared_type is ColumnType.FOREIGN_KEY:
            return None

        if not 0.0 <= col_doc.null_rate <= 1.0:
            self._add(
                SchemaIssueKind.INVALID_GENERATOR_SPEC,
                f"null_rate must be between 0 and 1, got {col_doc.null_rate}",
                f"{col_path}.null_rate",
                table=ctx.name,
                column=col_doc.name,
            )
        if col_doc.null_rate > 0 and not col_doc.nullable:
            self._add(
                SchemaIssueKind.INVALID_GENERATOR_SPEC,
                "null_rate requires the column to be nullable",
                f"{col_path}.null_rate",
                table=ctx.name,
                column=col_doc.name,
            )

        constraints = self._build_constraints(ctx, col_doc, col_path, value_type)
        if constraints is None:
            return None

        if relationship is not None:
            generator = self._build_reference(ctx, col_doc, col_path, relationship)
        else:
            generator = self._build_generator(
                ctx, col_doc, col_path, value_type, constraints, earlier
            )
        if generator is None:
            return None

        return ColumnDefinition(
            name=col_doc.name,
            column_type=ColumnType.FOREIGN_KEY if relationship else value_type,
            sql_type=sql_type,
            generator=generator,
            constraints=constraints,
            primary_key=col_doc.primary_key,
            auto_increment=col_doc.auto_increment,
            null_rate=col_doc.null_rate,
            default=None if col_doc.default is None else str(col_doc.default),
            description=col_doc.description,
        )

    def _build_constraints(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        value_type: ColumnType,
    ) -> ColumnConstraints | None:
        doc = col_doc.constraints or ConstraintsDocument()
        path = f"{col_path}.constraints"
        try:
            minimum = coerce_value(doc.min, value_type)
            maximum = coerce_value(doc.max, value_type)
        except (TypeError, ValueError) as e:
            self._add(
                SchemaIssueKind.INVALID_GENERATOR_SPEC,
                f"invalid min/max constraint: {e}",
                path,
                table=ctx.name,
                column=col_doc.name,
            )
            return None
        if minimum is not None and maximum is not None and minimum > maximum:
            self._add(
                SchemaIssueKind.INVALID_GENERATOR_SPEC,
                f"constraint min {doc.min!r} is greater than max {doc.max!r}",
                path,
                table=ctx.name,
                column=col_doc.name,
            )
            return None

        allowed = doc.values
        if allowed is None and value_type is ColumnType.ENUM and ctx.type_args.get(col_doc.name):
            allowed = list(ctx.type_args[col_doc.name])
        if allowed is not None and not allowed:
            self._add(
                SchemaIssueKind.INVALID_GENERATOR_SPEC,
                "enumerated value set must not be empty",
                f"{path}.values",
                table=ctx.name,
                column=col_doc.name,
            )
            return None

        return ColumnConstraints(
            nullable=col_doc.nullable and not col_doc.primary_key,
            unique=col_doc.name in ctx.unique_columns,
            minimum=minimum,
            maximum=maximum,
            allowed_values=tuple(allowed) if allowed is not None else None,
        )

    def _build_reference(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        relationship: Relationship,
    ) -> ForeignKeyReferenceSpec | None:
        name = col_doc.generator.strip().lower()
        params = col_doc.generator_params
        if name and name not in REFERENCE_GENERATORS:
            self._invalid(
                ctx, col_doc, col_path,
                f"foreign key column cannot use generator '{col_doc.generator}'",
            )
            return None
        try:
            policy = SelectionPolicy(params.get("policy", SelectionPolicy.UNIFORM.value))
        except ValueError:
            self._invalid(
                ctx, col_doc, col_path,
                f"unknown selection policy '{params.get('policy')}'",
            )
            return None
        skew = params.get("skew", 1.2)
        if (
            not isinstance(skew, (int, float))
            or isinstance(skew, bool)
            or not math.isfinite(skew)
            or skew <= 0
        ):
            self._invalid(ctx, col_doc, col_path, f"skew must be positive, got {skew!r}")
            return None
        return ForeignKeyReferenceSpec(
            table=relationship.target_table,
            column=relationship.target_column,
            policy=policy,
            skew=float(skew),
        )

    def _build_generator(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        value_type: ColumnType,
        constraints: ColumnConstraints,
        earlier: list[str],
    ) -> GeneratorSpec | None:
        name = col_doc.generator.strip().lower()
        params = col_doc.generator_params

        if not name:
            return self._default_generator(ctx, col_doc, col_path, value_type, constraints)
        if name in REFERENCE_GENERATORS:
            self._invalid(
                ctx, col_doc, col_path,
                f"generator '{name}' requires a 'foreign_key' object on the column",
            )
            return None
        if name in RANGE_GENERATORS:
            return self._build_range(ctx, col_doc, col_path, value_type, constraints, params)
        if name in ENUM_GENERATORS:
            return self._build_enumeration(ctx, col_doc, col_path, value_type, constraints, params)
        if name == "boolean":
            probability = params.get("true_probability", 0.5)
            if (
                not isinstance(probability, (int, float))
                or isinstance(probability, bool)
                or not 0.0 <= probability <= 1.0
            ):
                self._invalid(
                    ctx, col_doc, col_path,
                    f"true_probability must be between 0 and 1, got {probability!r}",
                )
                return None
            return EnumerationSpec(values=(True, False), weights=(probability, 1 - probability))
        if name in SEQUENCE_GENERATORS:
            return self._build_sequence(ctx, col_doc, col_path, value_type, params)
        if name in DERIVED_GENERATORS:
            return self._build_derived(ctx, col_doc, col_path, params, earlier)
        if name == "faker":
            return self._build_faker(ctx, col_doc, col_path, params.get("provider", ""), params)
        if provider_exists(name):
            return self._build_faker(ctx, col_doc, col_path, name, params)

        self._invalid(ctx, col_doc, col_path, f"unknown generator '{col_doc.generator}'")
        return None

    def _default_generator(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        value_type: ColumnType,
        constraints: ColumnConstraints,
    ) -> GeneratorSpec | None:
        """Infer a generator from key status, type and column name."""
        if constraints.allowed_values is not None:
            return EnumerationSpec(values=constraints.allowed_values)

        if col_doc.primary_key or col_doc.auto_increment:
            if value_type is ColumnType.INTEGER:
                return UniqueSequenceSpec(start=1, step=1)
            if value_type is ColumnType.STRING:
                if col_doc.type.lower() == "uuid":
                    return FakerSpec(provider="uuid4")
                prefix = re.sub(r"[^A-Za-z0-9]", "", ctx.name)[:4].upper() or "ID"
                return UniqueSequenceSpec(start=1, step=1, format=prefix + "-{:06d}")

        if value_type is ColumnType.ENUM:
            self._invalid(
                ctx, col_doc, col_path,
                "enum column needs 'constraints.values' or an enum generator",
            )
            return None
        if value_type is ColumnType.BOOLEAN:
            return EnumerationSpec(values=(True, False))
        if value_type is ColumnType.INTEGER:
            return ScalarRangeSpec(
                minimum=_first(constraints.minimum, DEFAULT_INT_RANGE[0]),
                maximum=_first(constraints.maximum, DEFAULT_INT_RANGE[1]),
            )
        if value_type is ColumnType.DECIMAL:
            return ScalarRangeSpec(
                minimum=_first(constraints.minimum, DEFAULT_DECIMAL_RANGE[0]),
                maximum=_first(constraints.maximum, DEFAULT_DECIMAL_RANGE[1]),
                precision=self._declared_scale(ctx, col_doc.name),
            )
        if value_type is ColumnType.DATE:
            return ScalarRangeSpec(
                minimum=_first(constraints.minimum, DEFAULT_DATE_RANGE[0]),
                maximum=_first(constraints.maximum, DEFAULT_DATE_RANGE[1]),
            )
        if value_type is ColumnType.DATETIME:
            return ScalarRangeSpec(
                minimum=_first(constraints.minimum, DEFAULT_DATETIME_RANGE[0]),
                maximum=_first(constraints.maximum, DEFAULT_DATETIME_RANGE[1]),
            )

        if col_doc.type.lower() == "uuid":
            return FakerSpec(provider="uuid4")
        provider = COLUMN_PROVIDERS.get(col_doc.name.lower())
        if provider is not None:
            return FakerSpec(provider=provider)
        length = self._declared_length(ctx, col_doc.name)
        if length is not None and length < 5:
            return FakerSpec(provider="pystr", kwargs=(("min_chars", 1), ("max_chars", length)))
        max_chars = min(length or DEFAULT_TEXT_LENGTH, DEFAULT_TEXT_LENGTH)
        return FakerSpec(provider="text", kwargs=(("max_nb_chars", max_chars),))

    def _build_range(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        value_type: ColumnType,
        constraints: ColumnConstraints,
        params: dict[str, Any],
    ) -> ScalarRangeSpec | None:
        if not (value_type.is_numeric or value_type.is_temporal):
            self._invalid(
                ctx, col_doc, col_path,
                f"range generator needs a numeric or date column, not '{col_doc.type}'",
            )
            return None

        defaults = {
            ColumnType.INTEGER: DEFAULT_INT_RANGE,
            ColumnType.DECIMAL: DEFAULT_DECIMAL_RANGE,
            ColumnType.DATE: DEFAULT_DATE_RANGE,
            ColumnType.DATETIME: DEFAULT_DATETIME_RANGE,
        }[value_type]
        try:
            minimum = coerce_value(params.get("min"), value_type)
            maximum = coerce_value(params.get("max"), value_type)
        except (TypeError, ValueError) as e:
            self._invalid(ctx, col_doc, col_path, f"invalid range bound: {e}")
            return None
        minimum = _first(minimum, constraints.minimum, defaults[0])
        maximum = _first(maximum, constraints.maximum, defaults[1])
        if minimum > maximum:
            self._invalid(
                ctx, col_doc, col_path,
                f"min {minimum} is greater than max {maximum}",
            )
            return None

        try:
            distribution = Distribution(params.get("distribution", Distribution.UNIFORM.value))
        except ValueError:
            self._invalid(
                ctx, col_doc, col_path,
                f"unknown distribution '{params.get('distribution')}'",
            )
            return None

        numbers = {}
        for key in ("skew", "mean", "stddev"):
            value = params.get(key)
            if value is not None and (
                not isinstance(value, (int, float))
                or isinstance(value, bool)
                or not math.isfinite(value)
            ):
                self._invalid(
                    ctx, col_doc, col_path, f"{key} must be a finite number, got {value!r}"
                )
                return None
            numbers[key] = value
        if numbers["skew"] is not None and numbers["skew"] <= 0:
            self._invalid(ctx, col_doc, col_path, "skew must be positive")
            return None
        if numbers["stddev"] is not None and numbers["stddev"] <= 0:
            self._invalid(ctx, col_doc, col_path, "stddev must be positive")
            return None

        precision = params.get("precision", self._declared_scale(ctx, col_doc.name))
        if not isinstance(precision, int) or isinstance(precision, bool) or precision < 0:
            self._invalid(
                ctx, col_doc, col_path,
                f"precision must be a non-negative integer, got {precision!r}",
            )
            return None

        return ScalarRangeSpec(
            minimum=minimum,
            maximum=maximum,
            distribution=distribution,
            skew=float(numbers["skew"]) if numbers["skew"] is not None else 2.0,
            mean=numbers["mean"],
            stddev=numbers["stddev"],
            precision=precision,
        )

    def _build_enumeration(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        value_type: ColumnType,
        constraints: ColumnConstraints,
        params: dict[str, Any],
    ) -> EnumerationSpec | None:
        raw_values = params.get("values", constraints.allowed_values)
        weights = params.get("weights")
        if isinstance(raw_values, dict):
            if weights is not None:
                self._invalid(
                    ctx, col_doc, col_path,
                    "give weights either as a values mapping or as 'weights', not both",
                )
                return None
            weights = list(raw_values.values())
            raw_values = list(raw_values.keys())
        if not raw_values or not isinstance(raw_values, (list, tuple)):
            self._invalid(ctx, col_doc, col_path, "enum generator needs a non-empty 'values' list")
            return None

        try:
            values = tuple(coerce_value(v, value_type) for v in raw_values)
        except (TypeError, ValueError) as e:
            self._invalid(ctx, col_doc, col_path, f"invalid enum value: {e}")
            return None

        if weights is not None:
            if (
                not isinstance(weights, (list, tuple))
                or len(weights) != len(values)
                or any(
                    not isinstance(w, (int, float)) or isinstance(w, bool) or w < 0
                    for w in weights
                )
                or sum(weights) <= 0
            ):
                self._invalid(
                    ctx, col_doc, col_path,
                    "weights must be non-negative numbers, one per value, not all zero",
                )
                return None
            weights = tuple(float(w) for w in weights)

        if constraints.allowed_values is not None:
            outside = [v for v in values if v not in constraints.allowed_values]
            if outside:
                self._invalid(
                    ctx, col_doc, col_path,
                    f"enum values {outside!r} are outside the allowed value set",
                )
                return None

        return EnumerationSpec(values=values, weights=weights)

    def _build_sequence(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        value_type: ColumnType,
        params: dict[str, Any],
    ) -> UniqueSequenceSpec | None:
        ints = {}
        for key, default in (("start", 1), ("step", 1), ("end", None)):
            value = params.get(key, default)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                self._invalid(ctx, col_doc, col_path, f"{key} must be an integer, got {value!r}")
                return None
            ints[key] = value
        if ints["step"] == 0:
            self._invalid(ctx, col_doc, col_path, "step must not be zero")
            return None

        try:
            order = SequenceOrder(params.get("order", SequenceOrder.ASCENDING.value))
        except ValueError:
            self._invalid(ctx, col_doc, col_path, f"unknown sequence order '{params.get('order')}'")
            return None

        fmt = params.get("format")
        if fmt is None and value_type is not ColumnType.INTEGER and value_type is not ColumnType.STRING:
            self._invalid(
                ctx, col_doc, col_path,
                f"sequence generator needs an integer or string column, not '{col_doc.type}'",
            )
            return None
        if fmt is not None:
            try:
                str(fmt).format(ints["start"])
            except (ValueError, IndexError, KeyError) as e:
                self._invalid(ctx, col_doc, col_path, f"invalid sequence format {fmt!r}: {e}")
                return None

        spec = UniqueSequenceSpec(
            start=ints["start"],
            step=ints["step"],
            end=ints["end"],
            order=order,
            format=str(fmt) if fmt is not None else None,
        )
        if spec.end is not None and spec.domain_size == 0:
            self._invalid(
                ctx, col_doc, col_path,
                f"sequence from {spec.start} to {spec.end} by {spec.step} is empty",
            )
            return None
        if order is SequenceOrder.SHUFFLED and spec.end is None:
            self._invalid(ctx, col_doc, col_path, "shuffled sequence needs an 'end'")
            return None
        return spec

    def _build_derived(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        params: dict[str, Any],
        earlier: list[str],
    ) -> DerivedSpec | None:
        expression = params.get("expression")
        template = params.get("template")
        if (expression is None) == (template is None):
            self._invalid(
                ctx, col_doc, col_path,
                "derived generator needs exactly one of 'expression' or 'template'",
            )
            return None

        try:
            if expression is not None:
                references = compile_expression(str(expression)).names
            else:
                references = template_fields(str(template))
        except ValueError as e:
            self._invalid(ctx, col_doc, col_path, str(e))
            return None

        for ref in references:
            if ref not in earlier:
                where = (
                    "does not exist"
                    if ref not in ctx.column_types
                    else "is not declared before this column"
                )
                self._add(
                    SchemaIssueKind.FORWARD_COLUMN_REFERENCE,
                    f"derived column references '{ref}', which {where}",
                    f"{col_path}.generator_params",
                    table=ctx.name,
                    column=col_doc.name,
                )
                return None

        precision = params.get("precision")
        if precision is not None and (not isinstance(precision, int) or precision < 0):
            self._invalid(
                ctx, col_doc, col_path,
                f"precision must be a non-negative integer, got {precision!r}",
            )
            return None

        return DerivedSpec(
            expression=str(expression) if expression is not None else None,
            template=str(template) if template is not None else None,
            references=tuple(references),
            precision=precision,
        )

    def _build_faker(
        self,
        ctx: _TableContext,
        col_doc: ColumnDocument,
        col_path: str,
        provider: str,
        params: dict[str, Any],
    ) -> FakerSpec | None:
        if not provider or not provider_exists(provider):
            self._invalid(ctx, col_doc, col_path, f"unknown faker provider '{provider}'")
            return None
        args = params.get("args", [])
        if "kwargs" in params:
            kwargs = params["kwargs"]
        else:
            kwargs = {k: v for k, v in params.items() if k not in ("provider", "args")}
        if not isinstance(args, list) or not isinstance(kwargs, dict):
            self._invalid(
                ctx, col_doc, col_path,
                "faker 'args' must be a list and 'kwargs' an object",
            )
            return None
        return FakerSpec(
            provider=provider,
            args=tuple(args),
            kwargs=tuple(sorted(kwargs.items())),
        )

    # Helpers

    def _declared_scale(self, ctx: _TableContext, column: str) -> int:
        args = ctx.type_args.get(column) or []
        if len(args) == 2 and args[1].isdigit():
            return int(args[1])
        return 2

    def _declared_length(self, ctx: _TableContext, column: str) -> int | None:
        args = ctx.type_args.get(column) or []
        if len(args) == 1 and args[0].isdigit():
            return int(args[0])
        return None

    def _invalid(
        self, ctx: _TableContext, col_doc: ColumnDocument, col_path: str, message: str
    ) -> None:
        self._add(
            SchemaIssueKind.INVALID_GENERATOR_SPEC,
            message,
            f"{col_path}.generator_params",
            table=ctx.name,
            column=col_doc.name,
        )

    def _add(
        self,
        kind: SchemaIssueKind,
        message: str,
        path: str = "",
        table: str | None = None,
        column: str | None = None,
    ) -> None:
        self._issues.append(
            SchemaIssue(kind=kind, message=message, path=path, table=table, column=column)
        )


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def parse_schema(raw: bytes | str, source: str | None = None) -> SchemaDefinition:
    """
    Parse a schema from raw JSON input.

    Raises:
        SchemaError: If the document is malformed or inconsistent
    """
    return SchemaLoader().load_bytes(raw, source=source)


def load_schema(path: str | Path) -> SchemaDefinition:
    """
    Load and parse a schema from a file path.

    Raises:
        FileNotFoundError: If the file doesn't exist
        SchemaError: If the document is malformed or inconsistent
    """
    return SchemaLoader().load_path(path)
