"""Schema model and generator specification types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class ColumnType(str, Enum):
    """Semantic column types understood by the generation engine."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    ENUM = "enum"
    FOREIGN_KEY = "foreign_key"

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.INTEGER, ColumnType.DECIMAL)

    @property
    def is_temporal(self) -> bool:
        return self in (ColumnType.DATE, ColumnType.DATETIME)


class Distribution(str, Enum):
    UNIFORM = "uniform"
    NORMAL = "normal"
    SKEWED = "skewed"


class SequenceOrder(str, Enum):
    ASCENDING = "ascending"
    SHUFFLED = "shuffled"


class SelectionPolicy(str, Enum):
    UNIFORM = "uniform"
    SKEWED = "skewed"


class Cardinality(str, Enum):
    ONE_TO_MANY = "one_to_many"
    ONE_TO_ONE = "one_to_one"


# Generator specifications: a closed set of variants, validated at load time.

@dataclass(frozen=True)
class ScalarRangeSpec:
    """
    Numeric or temporal value drawn within [minimum, maximum].

    Attributes:
        minimum: Lower bound (int, Decimal, date or datetime)
        maximum: Upper bound, same type as minimum
        distribution: How values spread across the range
        skew: Exponent for the skewed distribution (>1 favours the low end)
        mean: Centre for the normal distribution (defaults to midpoint)
        stddev: Spread for the normal distribution (defaults to range/6)
        precision: Decimal places for decimal values
    """

    minimum: int | Decimal | date | datetime
    maximum: int | Decimal | date | datetime
    distribution: Distribution = Distribution.UNIFORM
    skew: float = 2.0
    mean: float | None = None
    stddev: float | None = None
    precision: int = 2


@dataclass(frozen=True)
class EnumerationSpec:
    """Value drawn from a fixed, optionally weighted, set."""

    values: tuple[Any, ...]
    weights: tuple[float, ...] | None = None


@dataclass(frozen=True)
class UniqueSequenceSpec:
    """
    Unique values from an arithmetic sequence.

    Attributes:
        start: First value
        step: Increment between values (non-zero)
        end: Inclusive last value; None means unbounded
        order: Emit values in ascending or shuffled order
        format: Optional ``str.format`` template applied to each value
    """

    start: int = 1
    step: int = 1
    end: int | None = None
    order: SequenceOrder = SequenceOrder.ASCENDING
    format: str | None = None

    @property
    def domain_size(self) -> int | None:
        """Number of distinct values, or None when unbounded."""
        if self.end is None:
            return None
        span = (self.end - self.start) // self.step
        return max(span + 1, 0)


@dataclass(frozen=True)
class ForeignKeyReferenceSpec:
    """Select an existing key from the referenced table's RecordSet."""

    table: str
    column: str
    policy: SelectionPolicy = SelectionPolicy.UNIFORM
    skew: float = 1.2


@dataclass(frozen=True)
class DerivedSpec:
    """
    Value computed from columns earlier in the same row.

    Exactly one of ``expression`` and ``template`` is set.

    Attributes:
        expression: Arithmetic expression over earlier column names
        template: ``str.format`` template with ``{column}`` placeholders
        references: Column names the expression/template reads
        precision: Decimal places to round numeric results to
    """

    expression: str | None = None
    template: str | None = None
    references: tuple[str, ...] = ()
    precision: int | None = None


@dataclass(frozen=True)
class FakerSpec:
    """Content produced by a Faker provider method."""

    provider: str
    args: tuple[Any, ...] = ()
    kwargs: tuple[tuple[str, Any], ...] = ()


GeneratorSpec = Union[
    ScalarRangeSpec,
    EnumerationSpec,
    UniqueSequenceSpec,
    ForeignKeyReferenceSpec,
    DerivedSpec,
    FakerSpec,
]


@dataclass(frozen=True)
class ColumnConstraints:
    """
    Constraints enforced when a value is assigned.

    Attributes:
        nullable: Whether NULL is allowed
        unique: Whether values must be distinct within the table
        minimum: Inclusive lower bound checked on every value
        maximum: Inclusive upper bound checked on every value
        allowed_values: Enumerated value set, when declared
    """

    nullable: bool = False
    unique: bool = False
    minimum: Any = None
    maximum: Any = None
    allowed_values: tuple[Any, ...] | None = None

    def admits(self, value: Any) -> bool:
        """Check min/max/value-set constraints for a non-null value."""
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        if self.allowed_values is not None and value not in self.allowed_values:
            return False
        return True


@dataclass(frozen=True)
class ForeignKeyAction:
    """Referential actions declared on a foreign key (used for DDL)."""

    on_delete: str = "RESTRICT"
    on_update: str = "RESTRICT"


@dataclass(frozen=True)
class Relationship:
    """
    Foreign key owned by the child table.

    The target table is a lookup, never an ownership edge.

    Attributes:
        source_column: Column in the child table
        target_table: Parent table name
        target_column: Primary or unique key column in the parent
        cardinality: Hint for fan-out between parent and child
        actions: ON DELETE / ON UPDATE actions
    """

    source_column: str
    target_table: str
    target_column: str
    cardinality: Cardinality = Cardinality.ONE_TO_MANY
    actions: ForeignKeyAction = field(default_factory=ForeignKeyAction)


@dataclass(frozen=True)
class ColumnDefinition:
    """
    Column metadata and its generator.

    Attributes:
        name: Column name
        column_type: Semantic type
        sql_type: Declared type spelling, kept for DDL output
        generator: Generator specification
        constraints: Assignment-time constraints
        primary_key: Whether this is the table's primary key
        null_rate: Probability of NULL for nullable columns
        description: Free-text description
    """

    name: str
    column_type: ColumnType
    sql_type: str
    generator: GeneratorSpec
    constraints: ColumnConstraints = field(default_factory=ColumnConstraints)
    primary_key: bool = False
    auto_increment: bool = False
    null_rate: float = 0.0
    default: str | None = None
    description: str = ""

    @property
    def is_key(self) -> bool:
        """Whether values of this column can be foreign key targets."""
        return self.primary_key or self.constraints.unique


@dataclass(frozen=True)
class IndexDefinition:
    """Index declared on a table; unique indexes are enforced."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False
    index_type: str = ""


@dataclass(frozen=True)
class TableDefinition:
    """
    Table metadata.

    Attributes:
        name: Table name
        columns: Columns in declared (generation) order
        relationships: Foreign keys owned by this table
        record_count: Default number of rows to generate
        indexes: Declared indexes
        description: Free-text description
    """

    name: str
    columns: tuple[ColumnDefinition, ...]
    relationships: tuple[Relationship, ...] = ()
    record_count: int = 0
    indexes: tuple[IndexDefinition, ...] = ()
    description: str = ""

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def primary_key(self) -> ColumnDefinition | None:
        """Get the primary key column."""
        for col in self.columns:
            if col.primary_key:
                return col
        return None

    @property
    def key_columns(self) -> list[str]:
        """Columns whose values are indexed for foreign key lookups."""
        return [col.name for col in self.columns if col.is_key]

    def get_column(self, name: str) -> ColumnDefinition | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def relationship_for(self, column: str) -> Relationship | None:
        for rel in self.relationships:
            if rel.source_column == column:
                return rel
        return None

    @property
    def parent_tables(self) -> set[str]:
        """Tables this table depends on, excluding itself."""
        return {
            rel.target_table
            for rel in self.relationships
            if rel.target_table != self.name
        }

    def get_self_referencing(self) -> list[Relationship]:
        """Get all self-referencing foreign keys."""
        return [rel for rel in self.relationships if rel.target_table == self.name]

    @property
    def composite_unique_indexes(self) -> list[IndexDefinition]:
        """Unique indexes spanning more than one column."""
        return [idx for idx in self.indexes if idx.unique and len(idx.columns) > 1]


@dataclass(frozen=True)
class SchemaMetadata:
    industry: str = ""
    tags: tuple[str, ...] = ()
    total_records: int = 0
    complexity_tier: int = 0


@dataclass(frozen=True)
class ValidationRule:
    rule: str
    description: str = ""
    severity: str = ""


@dataclass(frozen=True)
class SchemaDefinition:
    """
    Named collection of tables for one vertical (fintech, healthcare, retail).

    Read-only once produced by the loader.
    """

    name: str
    tables: tuple[TableDefinition, ...]
    description: str = ""
    version: str = ""
    schema_version: str = ""
    author: str = ""
    database_types: tuple[str, ...] = ("mysql", "postgres")
    metadata: SchemaMetadata = field(default_factory=SchemaMetadata)
    generation_order: tuple[str, ...] = ()
    validation_rules: tuple[ValidationRule, ...] = ()

    @property
    def vertical(self) -> str:
        """Industry vertical, falling back to the schema name prefix."""
        return self.metadata.industry or self.name.split("-")[0]

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]

    def get_table(self, name: str) -> TableDefinition:
        """
        Get a table by name.

        Raises:
            KeyError: If the table is not part of this schema
        """
        for table in self.tables:
            if table.name == name:
                return table
        raise KeyError(name)
