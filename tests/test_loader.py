"""Test schema loading and validation."""

import json
from datetime import date
from decimal import Decimal

import pytest

from sourcebox.exceptions import SchemaError, SchemaIssueKind
from sourcebox.loader import load_schema, parse_column_type, parse_schema
from sourcebox.models import (
    Cardinality,
    ColumnType,
    DerivedSpec,
    EnumerationSpec,
    FakerSpec,
    ForeignKeyReferenceSpec,
    ScalarRangeSpec,
    UniqueSequenceSpec,
)


def _issues(build_schema, doc):
    with pytest.raises(SchemaError) as exc_info:
        build_schema(doc)
    return exc_info.value


def test_parse_valid_schema(shop_schema):
    """Test a consistent document produces a complete SchemaDefinition."""
    assert shop_schema.name == "shop"
    assert shop_schema.table_names == ["customers", "orders"]

    orders = shop_schema.get_table("orders")
    assert orders.record_count == 50
    assert orders.column_names == ["id", "customer_id", "quantity", "unit_price", "total"]
    assert orders.parent_tables == {"customers"}

    rel = orders.relationship_for("customer_id")
    assert rel.target_table == "customers"
    assert rel.target_column == "id"
    assert rel.cardinality is Cardinality.ONE_TO_MANY


def test_column_types_and_generators(shop_schema):
    """Test declared types map to semantic types and generator variants."""
    customers = shop_schema.get_table("customers")
    orders = shop_schema.get_table("orders")

    assert customers.get_column("id").column_type is ColumnType.INTEGER
    assert isinstance(customers.get_column("id").generator, UniqueSequenceSpec)
    assert isinstance(customers.get_column("email").generator, FakerSpec)
    assert customers.get_column("email").constraints.unique
    assert isinstance(customers.get_column("tier").generator, EnumerationSpec)

    assert orders.get_column("customer_id").column_type is ColumnType.FOREIGN_KEY
    assert isinstance(orders.get_column("customer_id").generator, ForeignKeyReferenceSpec)

    price = orders.get_column("unit_price").generator
    assert isinstance(price, ScalarRangeSpec)
    assert price.minimum == Decimal("1")
    assert price.precision == 2

    total = orders.get_column("total").generator
    assert isinstance(total, DerivedSpec)
    assert total.references == ("quantity", "unit_price")


def test_default_generators_inferred(build_schema):
    """Test columns without a generator get one from key, type and name."""
    doc = {
        "name": "people",
        "tables": [
            {
                "name": "people",
                "record_count": 3,
                "columns": [
                    {"name": "code", "type": "varchar(20)", "primary_key": True},
                    {"name": "email", "type": "varchar(255)"},
                    {"name": "born", "type": "date"},
                    {"name": "active", "type": "bool"},
                    {"name": "notes", "type": "varchar(3)"},
                ],
            }
        ],
    }
    table = build_schema(doc).get_table("people")

    code = table.get_column("code").generator
    assert isinstance(code, UniqueSequenceSpec)
    assert code.format == "PEOP-{:06d}"
    assert table.get_column("email").generator == FakerSpec(provider="email")
    born = table.get_column("born").generator
    assert isinstance(born, ScalarRangeSpec)
    assert isinstance(born.minimum, date)
    assert table.get_column("active").generator == EnumerationSpec(values=(True, False))
    assert table.get_column("notes").generator.provider == "pystr"


def test_invalid_json_is_malformed():
    """Test unparseable input reports MalformedInput."""
    with pytest.raises(SchemaError) as exc_info:
        parse_schema(b"{not json")

    assert exc_info.value.kinds == {SchemaIssueKind.MALFORMED_INPUT}


def test_empty_input_is_malformed():
    """Test empty input reports MalformedInput."""
    with pytest.raises(SchemaError) as exc_info:
        parse_schema("   ")

    assert exc_info.value.kinds == {SchemaIssueKind.MALFORMED_INPUT}


def test_unknown_field_rejected(build_schema, shop_doc):
    """Test unknown keys are reported with their location."""
    shop_doc["tables"][0]["colour"] = "blue"

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.MALFORMED_INPUT}
    assert error.issues[0].path == "tables[0].colour"


def test_missing_tables(build_schema):
    """Test a document without tables reports MissingField."""
    error = _issues(build_schema, {"name": "empty"})

    assert SchemaIssueKind.MISSING_FIELD in error.kinds


def test_all_issues_collected(build_schema, shop_doc):
    """Test every independent problem is reported in one error."""
    shop_doc["tables"][1]["columns"][2]["type"] = "blob"
    shop_doc["tables"][1]["columns"][1]["foreign_key"]["table"] = "users"
    shop_doc["tables"].append(
        {
            "name": "customers",
            "columns": [{"name": "id", "type": "int", "primary_key": True}],
        }
    )

    error = _issues(build_schema, shop_doc)

    assert {
        SchemaIssueKind.DUPLICATE_TABLE_NAME,
        SchemaIssueKind.UNKNOWN_COLUMN_TYPE,
        SchemaIssueKind.DANGLING_FOREIGN_KEY,
    } <= error.kinds
    unknown = next(i for i in error.issues if i.kind is SchemaIssueKind.UNKNOWN_COLUMN_TYPE)
    assert unknown.table == "orders"
    assert unknown.column == "quantity"


def test_duplicate_column(build_schema, shop_doc):
    """Test repeated column names are reported."""
    shop_doc["tables"][0]["columns"].append({"name": "tier", "type": "text"})

    error = _issues(build_schema, shop_doc)

    assert SchemaIssueKind.DUPLICATE_COLUMN_NAME in error.kinds


def test_primary_key_required(build_schema, shop_doc):
    """Test a table must have exactly one primary key."""
    shop_doc["tables"][0]["columns"][0]["primary_key"] = False

    error = _issues(build_schema, shop_doc)

    assert SchemaIssueKind.INVALID_PRIMARY_KEY in error.kinds


def test_foreign_key_must_target_key(build_schema, shop_doc):
    """Test foreign keys may only point at primary or unique columns."""
    shop_doc["tables"][1]["columns"][1]["foreign_key"]["column"] = "tier"

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.DANGLING_FOREIGN_KEY}


def test_invalid_referential_action(build_schema, shop_doc):
    """Test unsupported ON DELETE actions are rejected."""
    shop_doc["tables"][1]["columns"][1]["foreign_key"]["on_delete"] = "EXPLODE"

    error = _issues(build_schema, shop_doc)

    assert SchemaIssueKind.INVALID_REFERENTIAL_ACTION in error.kinds


def test_invalid_database_type(build_schema, shop_doc):
    """Test only mysql and postgres are accepted."""
    shop_doc["database_type"] = ["postgres", "oracle"]

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.INVALID_DATABASE_TYPE}
    assert error.issues[0].path == "database_type[1]"


@pytest.mark.parametrize(
    "generator, params",
    [
        ("int_range", {"min": 10, "max": 1}),
        ("int_range", {"distribution": "bimodal"}),
        ("enum", {"values": []}),
        ("enum", {"values": ["a", "b"], "weights": [1]}),
        ("sequence", {"step": 0}),
        ("sequence", {"start": 1, "end": 0}),
        ("sequence", {"order": "shuffled"}),
        ("sparkle", {}),
        ("faker", {"provider": "not_a_provider"}),
        ("derived", {"expression": "quantity +"}),
        ("derived", {"expression": "__import__('os')"}),
    ],
)
def test_invalid_generator_spec(build_schema, shop_doc, generator, params):
    """Test bad generator configuration is rejected at load time."""
    column = shop_doc["tables"][1]["columns"][2]
    column["generator"] = generator
    column["generator_params"] = params

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.INVALID_GENERATOR_SPEC}
    assert error.issues[0].column == "quantity"


@pytest.mark.parametrize(
    "field, value",
    [
        ("constraints", {"min": "NaN", "max": 5}),
        ("constraints", {"min": 1, "max": "Infinity"}),
        ("generator_params", {"min": "-Infinity", "max": 100}),
        ("generator_params", {"min": 1, "max": float("nan")}),
        ("generator_params", {"distribution": "normal", "mean": float("inf")}),
    ],
)
def test_non_finite_bounds_rejected(build_schema, shop_doc, field, value):
    """Test NaN and infinite bounds are reported as schema issues."""
    column = shop_doc["tables"][1]["columns"][3]
    column[field] = value

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.INVALID_GENERATOR_SPEC}
    assert {issue.column for issue in error.issues} == {"unit_price"}


def test_forward_column_reference(build_schema, shop_doc):
    """Test derived columns may only read columns declared before them."""
    columns = shop_doc["tables"][1]["columns"]
    columns.insert(2, columns.pop())  # move total before quantity

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.FORWARD_COLUMN_REFERENCE}


def test_unknown_generation_order_table(build_schema, shop_doc):
    """Test generation_order may only name existing tables."""
    shop_doc["generation_order"] = ["customers", "invoices"]

    error = _issues(build_schema, shop_doc)

    assert error.kinds == {SchemaIssueKind.UNKNOWN_TABLE}


def test_one_to_one_relationship_makes_reference_unique(build_schema, shop_doc):
    """Test one_to_one relationships constrain the child column to be unique."""
    shop_doc["relationships"] = [
        {
            "from_table": "orders",
            "from_column": "customer_id",
            "to_table": "customers",
            "to_column": "id",
            "relationship_type": "one_to_one",
        }
    ]

    column = build_schema(shop_doc).get_table("orders").get_column("customer_id")

    assert column.constraints.unique
    rel = build_schema(shop_doc).get_table("orders").relationship_for("customer_id")
    assert rel.cardinality is Cardinality.ONE_TO_ONE


def test_enum_type_values(build_schema):
    """Test MySQL-style enum('a','b') declares the allowed value set."""
    doc = {
        "name": "flags",
        "tables": [
            {
                "name": "flags",
                "record_count": 5,
                "columns": [
                    {"name": "id", "type": "int", "primary_key": True},
                    {"name": "state", "type": "enum('on','off')"},
                ],
            }
        ],
    }

    column = build_schema(doc).get_table("flags").get_column("state")

    assert column.constraints.allowed_values == ("on", "off")
    assert column.generator == EnumerationSpec(values=("on", "off"))


@pytest.mark.parametrize(
    "declared, expected",
    [
        ("varchar(255)", ColumnType.STRING),
        ("INT", ColumnType.INTEGER),
        ("bigint unsigned", ColumnType.INTEGER),
        ("decimal(10,2)", ColumnType.DECIMAL),
        ("double precision", ColumnType.DECIMAL),
        ("timestamp", ColumnType.DATETIME),
        ("date", ColumnType.DATE),
        ("bool", ColumnType.BOOLEAN),
        ("uuid", ColumnType.STRING),
        ("blob", None),
    ],
)
def test_parse_column_type(declared, expected):
    """Test SQL and semantic type spellings."""
    column_type, _ = parse_column_type(declared)
    assert column_type is expected


def test_load_schema_from_file(tmp_path, shop_doc):
    """Test loading a schema document from disk."""
    path = tmp_path / "shop.json"
    path.write_text(json.dumps(shop_doc))

    schema = load_schema(path)

    assert schema.name == "shop"


def test_load_schema_missing_file(tmp_path):
    """Test a missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_schema(tmp_path / "missing.json")


def test_error_message_lists_issues(build_schema, shop_doc):
    """Test the error message names each issue and its path."""
    shop_doc["tables"][0]["columns"][0]["primary_key"] = False

    error = _issues(build_schema, shop_doc)

    assert "[InvalidPrimaryKey] tables[0].columns" in str(error)
    assert "Suggestions:" in str(error)
