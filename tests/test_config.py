"""Test configuration loading."""

import pytest

from sourcebox.config import SeedConfig
from sourcebox.exceptions import ConfigurationError

SAMPLE_TOML = """
schema_name = "fintech-loans"
sink = "mysql"
timeout = 30

[generation]
seed = 42
records = 25
workers = 4

[generation.table_records]
payments = 100

[database]
host = "db.internal"
user = "seeder"
password = "hunter2"
name = "lending"
batch_size = 250
"""


def test_defaults():
    """Test configuration defaults."""
    config = SeedConfig()

    assert config.sink == "file"
    assert config.dry_run is False
    assert config.generation.seed is None
    assert config.generation.workers == 1
    assert config.generation.unique_retry_limit == 100
    assert config.database.batch_size == 500
    assert config.database.single_transaction is True
    assert config.output.path == "-"
    assert config.output.dialect == "postgres"


def test_from_toml(tmp_path):
    """Test loading configuration from sourcebox.toml."""
    path = tmp_path / "sourcebox.toml"
    path.write_text(SAMPLE_TOML)

    config = SeedConfig.from_toml(path)

    assert config.schema_name == "fintech-loans"
    assert config.sink == "mysql"
    assert config.timeout == 30
    assert config.generation.seed == 42
    assert config.generation.workers == 4
    assert config.generation.table_records == {"payments": 100}
    assert config.database.host == "db.internal"
    assert config.database.password.get_secret_value() == "hunter2"
    assert "hunter2" not in repr(config)


def test_from_toml_missing(tmp_path):
    """Test a missing config file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        SeedConfig.from_toml(tmp_path / "missing.toml")


def test_invalid_toml(tmp_path):
    """Test unparseable TOML is a configuration error."""
    path = tmp_path / "sourcebox.toml"
    path.write_text("sink = [unclosed")

    with pytest.raises(ConfigurationError, match="Invalid TOML"):
        SeedConfig.from_toml(path)


@pytest.mark.parametrize(
    "data, location",
    [
        ({"sink": "oracle"}, "sink"),
        ({"generation": {"workers": 0}}, "generation.workers"),
        ({"generation": {"table_records": {"orders": -1}}}, "generation.table_records"),
        ({"database": {"batch_size": 0}}, "database.batch_size"),
        ({"timeout": 0}, "timeout"),
    ],
)
def test_invalid_values(data, location):
    """Test invalid values are reported with their location."""
    with pytest.raises(ConfigurationError) as exc_info:
        SeedConfig.from_dict(data)

    assert location in str(exc_info.value)


def test_find_and_load_walks_up(tmp_path):
    """Test sourcebox.toml is found in a parent directory."""
    (tmp_path / "sourcebox.toml").write_text(SAMPLE_TOML)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    config = SeedConfig.find_and_load(nested)

    assert config.schema_name == "fintech-loans"


def test_find_and_load_not_found(tmp_path):
    """Test a missing config anywhere up the tree raises FileNotFoundError."""
    nested = tmp_path / "empty"
    nested.mkdir()

    # tmp_path's ancestors must not hold a sourcebox.toml for this to hold
    if any((parent / "sourcebox.toml").exists() for parent in nested.parents):
        pytest.skip("a sourcebox.toml exists above the temp directory")

    with pytest.raises(FileNotFoundError):
        SeedConfig.find_and_load(nested)


def test_environment_variables(monkeypatch):
    """Test SOURCEBOX_* environment variables override defaults."""
    monkeypatch.setenv("SOURCEBOX_SINK", "postgres")
    monkeypatch.setenv("SOURCEBOX_DRY_RUN", "true")
    monkeypatch.setenv("SOURCEBOX_GENERATION_SEED", "7")
    monkeypatch.setenv("SOURCEBOX_DB_HOST", "pg.internal")

    config = SeedConfig()

    assert config.sink == "postgres"
    assert config.dry_run is True
    assert config.generation.seed == 7
    assert config.database.host == "pg.internal"


def test_dialect_follows_sink():
    """Test file output defaults to the dialect of the database sink."""
    assert SeedConfig(sink="mysql").output.dialect == "mysql"
    assert SeedConfig(sink="file").output.dialect == "postgres"


def test_explicit_dialect_kept():
    """Test an explicit output dialect is not overridden."""
    config = SeedConfig(sink="mysql", output={"dialect": "postgres"})

    assert config.output.dialect == "postgres"


def test_count_for_precedence():
    """Test per-table counts beat the global count, which beats the schema."""
    config = SeedConfig(generation={"records": 10, "table_records": {"orders": 3}})

    assert config.count_for("orders", 500) == 3
    assert config.count_for("customers", 100) == 10
    assert SeedConfig().count_for("customers", 100) == 100


def test_port_for():
    """Test default ports per database."""
    config = SeedConfig()

    assert config.database.port_for("mysql") == 3306
    assert config.database.port_for("postgres") == 5432
    assert SeedConfig(database={"port": 6543}).database.port_for("postgres") == 6543
