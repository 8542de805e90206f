"""Test output sinks and SQL dialects."""

from datetime import date, datetime
from decimal import Decimal

import psycopg
import pymysql
import pytest

from sourcebox.engine import GenerationEngine
from sourcebox.exceptions import SinkError
from sourcebox.records import GeneratedRecord
from sourcebox.sinks import (
    COMPLETE_MARKER,
    INCOMPLETE_MARKER,
    MYSQL,
    POSTGRES,
    DryRunSink,
    FileSink,
    MySQLSink,
    PostgresSink,
    get_dialect,
)


def _write_all(sink, schema, seed=1):
    record_sets = GenerationEngine(schema, seed=seed).generate_all()
    order = list(record_sets)
    sink.open(schema, order, seed)
    results = []
    for name in order:
        results.append(
            sink.write_table(schema.get_table(name), record_sets[name].batches(sink.batch_size))
        )
    return results


class TestDialects:
    @pytest.mark.parametrize(
        "value, postgres, mysql",
        [
            (None, "NULL", "NULL"),
            (True, "TRUE", "1"),
            (7, "7", "7"),
            (Decimal("12.50"), "12.50", "12.50"),
            (date(2024, 2, 29), "'2024-02-29'", "'2024-02-29'"),
            (datetime(2024, 1, 2, 3, 4, 5), "'2024-01-02 03:04:05'", "'2024-01-02 03:04:05'"),
            ("O'Brien", "'O''Brien'", "'O\\'Brien'"),
            ("back\\slash", "'back\\slash'", "'back\\\\slash'"),
        ],
    )
    def test_literals(self, value, postgres, mysql):
        """Test values render as SQL literals per dialect."""
        assert POSTGRES.literal(value) == postgres
        assert MYSQL.literal(value) == mysql

    def test_identifier_quoting(self):
        """Test identifiers use the dialect's quote character."""
        assert POSTGRES.quote_identifier("order") == '"order"'
        assert MYSQL.quote_identifier("order") == "`order`"
        assert POSTGRES.quote_identifier('we"ird') == '"we""ird"'

    def test_get_dialect(self):
        """Test dialect lookup by name."""
        assert get_dialect("PostgreSQL") is POSTGRES
        assert get_dialect("mysql") is MYSQL
        with pytest.raises(ValueError, match="Unknown SQL dialect"):
            get_dialect("oracle")

    def test_insert_placeholders(self, shop_schema):
        """Test multi-row parameterized INSERTs."""
        sql = POSTGRES.insert_placeholders(shop_schema.get_table("customers"), 2)

        assert sql == (
            'INSERT INTO "customers" ("id", "email", "tier") '
            "VALUES (%s, %s, %s), (%s, %s, %s)"
        )

    def test_create_table_postgres(self, shop_schema):
        """Test DDL carries keys, uniques and foreign keys."""
        (statement,) = POSTGRES.create_table(shop_schema.get_table("orders"))

        assert statement.startswith('CREATE TABLE IF NOT EXISTS "orders" (')
        assert '"id" INTEGER NOT NULL' in statement
        assert '"unit_price" DECIMAL(10,2) NOT NULL' in statement
        assert 'PRIMARY KEY ("id")' in statement
        assert (
            'FOREIGN KEY ("customer_id") REFERENCES "customers" ("id") '
            "ON DELETE RESTRICT ON UPDATE RESTRICT"
        ) in statement

    def test_create_table_mysql(self, shop_schema):
        """Test MySQL DDL uses backticks and keeps unique keys."""
        (statement,) = MYSQL.create_table(shop_schema.get_table("customers"))

        assert "`email` VARCHAR(255) NOT NULL" in statement
        assert "UNIQUE (`email`)" in statement


class TestFileSink:
    def test_writes_complete_script(self, tmp_path, shop_schema):
        """Test the file holds a header, data in a transaction and the marker."""
        path = tmp_path / "seed.sql"
        sink = FileSink(path, dialect="postgres", batch_size=20)

        results = _write_all(sink, shop_schema, seed=5)
        sink.finalize()

        text = path.read_text()
        assert text.startswith("-- sourcebox seed data\n-- schema: shop (version 1.0)\n")
        assert "-- seed: 5\n" in text
        assert "\nBEGIN;\n" in text
        assert "\nCOMMIT;\n" in text
        assert text.rstrip().endswith(f"{COMPLETE_MARKER} (70 rows)")
        # 20 customers in one batch, 50 orders in three
        assert text.count('INSERT INTO "customers"') == 1
        assert text.count('INSERT INTO "orders"') == 3
        assert [r.rows_written for r in results] == [20, 50]

    def test_same_seed_same_bytes(self, tmp_path, shop_schema):
        """Test output is byte-identical for the same seed."""
        first, second = tmp_path / "a.sql", tmp_path / "b.sql"
        for path in (first, second):
            sink = FileSink(path, dialect="mysql")
            _write_all(sink, shop_schema, seed=99)
            sink.finalize()

        assert first.read_bytes() == second.read_bytes()

    def test_include_ddl(self, tmp_path, shop_schema):
        """Test CREATE TABLE statements precede the data."""
        path = tmp_path / "seed.sql"
        sink = FileSink(path, dialect="mysql", include_ddl=True)

        _write_all(sink, shop_schema)
        sink.finalize()

        text = path.read_text()
        assert text.index("CREATE TABLE IF NOT EXISTS `customers`") < text.index(
            "INSERT INTO `customers`"
        )
        assert "START TRANSACTION;" in text

    def test_abort_marks_incomplete(self, tmp_path, shop_schema):
        """Test an aborted file ends with ROLLBACK and the INCOMPLETE marker."""
        path = tmp_path / "seed.sql"
        sink = FileSink(path)
        sink.open(shop_schema, ["customers", "orders"], 1)

        sink.abort(RuntimeError("disk full\nmore detail"))

        text = path.read_text()
        assert "\nROLLBACK;\n" in text
        assert text.rstrip().endswith(f"{INCOMPLETE_MARKER}: seed aborted: disk full")
        assert COMPLETE_MARKER not in text

    def test_abort_before_open(self, tmp_path):
        """Test aborting an unopened sink writes nothing."""
        sink = FileSink(tmp_path / "seed.sql")

        sink.abort(RuntimeError("boom"))

        assert not (tmp_path / "seed.sql").exists()

    def test_without_transaction(self, tmp_path, shop_schema):
        """Test BEGIN/COMMIT can be left out."""
        path = tmp_path / "seed.sql"
        sink = FileSink(path, transaction=False)

        _write_all(sink, shop_schema)
        sink.finalize()

        text = path.read_text()
        assert "BEGIN;" not in text
        assert "COMMIT;" not in text

    def test_stdout(self, capsys, shop_schema):
        """Test '-' writes to standard output."""
        sink = FileSink("-")

        _write_all(sink, shop_schema)
        sink.finalize()

        assert COMPLETE_MARKER in capsys.readouterr().out

    def test_invalid_batch_size(self):
        """Test batch_size must be positive."""
        with pytest.raises(ValueError):
            FileSink("-", batch_size=0)


class TestConnectionSink:
    def test_batches_in_one_transaction(self, fake_connection, shop_schema):
        """Test rows go in batched INSERTs committed once."""
        sink = PostgresSink(batch_size=20, connection_factory=lambda: fake_connection)

        results = _write_all(sink, shop_schema)
        sink.finalize()

        inserts = [s for s in fake_connection.statements if s.startswith("INSERT")]
        assert len(inserts) == 4  # 1 customers + 3 orders
        assert fake_connection.commits == 1
        assert fake_connection.committed == {"customers": 20, "orders": 50}
        assert [r.rows_written for r in results] == [20, 50]
        assert fake_connection.closed

    def test_commit_per_table(self, fake_connection, shop_schema):
        """Test single_transaction=False commits after each table."""
        sink = PostgresSink(single_transaction=False, connection_factory=lambda: fake_connection)

        _write_all(sink, shop_schema)
        sink.finalize()

        assert fake_connection.commits == 3

    def test_write_failure_rolls_back(self, make_connection, shop_schema):
        """Test a failed INSERT raises SinkError and abort rolls everything back."""
        conn = make_connection(fail_after_rows=30)
        sink = PostgresSink(batch_size=10, connection_factory=lambda: conn)

        with pytest.raises(SinkError) as exc_info:
            _write_all(sink, shop_schema)
        sink.abort(exc_info.value)

        assert exc_info.value.table == "orders"
        assert "value too long" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, psycopg.DataError)
        assert conn.rollbacks == 1
        assert conn.total_committed == 0
        assert conn.closed

    def test_create_tables(self, fake_connection, shop_schema):
        """Test create_tables runs DDL in resolution order before inserting."""
        sink = PostgresSink(create_tables=True, connection_factory=lambda: fake_connection)

        _write_all(sink, shop_schema)

        ddl = [s for s in fake_connection.statements if s.startswith("CREATE TABLE")]
        assert [s.split('"')[1] for s in ddl] == ["customers", "orders"]

    def test_connect_retry_then_success(self, fake_connection, shop_schema):
        """Test transient connection failures are retried with backoff."""
        attempts = []
        delays = []

        def connect():
            attempts.append(1)
            if len(attempts) < 3:
                raise psycopg.OperationalError("connection refused")
            return fake_connection

        sink = PostgresSink(
            connect_retries=3,
            retry_backoff=0.5,
            connection_factory=connect,
            sleep=delays.append,
        )
        sink.open(shop_schema, ["customers", "orders"], 1)

        assert len(attempts) == 3
        assert len(delays) == 2
        # exponential: 0.5 then 1.0, plus up to 0.5 jitter
        assert 0.5 <= delays[0] <= 1.0
        assert 1.0 <= delays[1] <= 1.5
        assert sink.conn is fake_connection

    def test_connect_retries_exhausted(self, shop_schema):
        """Test connection failure surfaces as SinkError after the retries."""
        delays = []

        def connect():
            raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")

        sink = MySQLSink(
            url="mysql://app@db.internal/shop",
            connect_retries=2,
            connection_factory=connect,
            sleep=delays.append,
        )

        with pytest.raises(SinkError, match="after 3 attempts") as exc_info:
            sink.open(shop_schema, ["customers", "orders"], 1)

        assert "db.internal:3306/shop" in str(exc_info.value)
        assert len(delays) == 2

    def test_non_retryable_error_propagates(self, shop_schema):
        """Test errors other than connection failures are not retried."""
        attempts = []

        def connect():
            attempts.append(1)
            raise ValueError("bad option")

        sink = PostgresSink(connection_factory=connect, sleep=lambda _: None)

        with pytest.raises(ValueError):
            sink.open(shop_schema, ["customers"], 1)
        assert len(attempts) == 1

    def test_driver_error_on_connect_not_retried(self, shop_schema):
        """Test non-transient driver errors while connecting become SinkError at once."""
        attempts = []
        delays = []

        def connect():
            attempts.append(1)
            raise psycopg.ProgrammingError('missing "=" after "not" in connection info string')

        sink = PostgresSink(connect_retries=3, connection_factory=connect, sleep=delays.append)

        with pytest.raises(SinkError, match="could not connect") as exc_info:
            sink.open(shop_schema, ["customers"], 1)

        assert isinstance(exc_info.value.__cause__, psycopg.ProgrammingError)
        assert len(attempts) == 1
        assert delays == []
        assert sink.conn is None

    def test_abort_after_failed_create_tables(self, make_connection, shop_schema):
        """Test abort rolls back and closes a connection whose DDL failed during open."""

        class RejectingConnection(make_connection):
            def execute(self, sql, params):
                if sql.startswith("CREATE TABLE"):
                    raise psycopg.errors.InsufficientPrivilege("permission denied")
                super().execute(sql, params)

        conn = RejectingConnection()
        sink = PostgresSink(create_tables=True, connection_factory=lambda: conn)

        with pytest.raises(SinkError) as exc_info:
            sink.open(shop_schema, ["customers", "orders"], 1)
        sink.abort(exc_info.value)

        assert exc_info.value.table == "customers"
        assert conn.rollbacks == 1
        assert conn.closed

    def test_discards_on_abort(self):
        """Test only single-transaction sinks discard written rows on abort."""
        assert PostgresSink().discards_on_abort
        assert not MySQLSink(single_transaction=False).discards_on_abort
        assert FileSink().discards_on_abort
        assert not FileSink(transaction=False).discards_on_abort
        assert not DryRunSink().discards_on_abort

    def test_mysql_statements(self, fake_connection, shop_schema):
        """Test the MySQL sink quotes identifiers with backticks."""
        sink = MySQLSink(connection_factory=lambda: fake_connection)

        _write_all(sink, shop_schema)
        sink.finalize()

        assert fake_connection.statements[0].startswith("INSERT INTO `customers`")
        assert fake_connection.total_committed == 70

    def test_default_ports(self):
        """Test each database sink knows its default port."""
        assert PostgresSink().port == 5432
        assert MySQLSink().port == 3306
        assert PostgresSink(port=6543).port == 6543

    def test_write_before_open(self, shop_schema):
        """Test writing to an unopened sink is an error."""
        with pytest.raises(SinkError, match="not open"):
            PostgresSink().write_table(shop_schema.get_table("customers"), [])


class TestDryRunSink:
    def test_counts_rows(self, shop_schema):
        """Test the dry-run sink only counts rows."""
        sink = DryRunSink()

        _write_all(sink, shop_schema)
        sink.finalize()

        assert sink.counts == {"customers": 20, "orders": 50}
        assert sink.get_data("customers") == []
        assert sink.finalized

    def test_retain_rows(self, shop_schema):
        """Test retained rows can be inspected."""
        sink = DryRunSink(retain=True)

        _write_all(sink, shop_schema)

        customers = sink.get_data("customers")
        assert len(customers) == 20
        assert set(customers[0]) == {"id", "email", "tier"}

    def test_open_clears_previous_run(self, shop_schema):
        """Test reopening forgets earlier counts."""
        sink = DryRunSink(retain=True)
        sink.write_table(
            shop_schema.get_table("customers"),
            [[GeneratedRecord("customers", {"id": 1, "email": "a@b.c", "tier": "gold"})]],
        )

        sink.open(shop_schema, [], 1)

        assert sink.counts == {}
        assert sink.get_data("customers") == []
