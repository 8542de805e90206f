"""
Database sinks: insert generated rows over a live connection.

Rows go in as batched multi-row INSERT statements. By default the whole seed
runs in one transaction, so a failure anywhere rolls back every row.
"""

from __future__ import annotations

import logging
import random
import time
from abc import abstractmethod
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import unquote, urlparse

import psycopg
import pymysql

from sourcebox.exceptions import SinkError
from sourcebox.models import SchemaDefinition, TableDefinition
from sourcebox.records import GeneratedRecord
from sourcebox.sinks.base import DEFAULT_BATCH_SIZE, Sink, SinkResult
from sourcebox.sinks.dialects import MYSQL, POSTGRES, Dialect

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 0.5  # seconds, doubled per attempt
MAX_RETRY_DELAY = 10.0
CONNECT_TIMEOUT = 10  # seconds


class ConnectionSink(Sink):
    """
    Base for sinks that write through a DB-API connection.

    Args:
        host: Database host
        port: Database port
        user: Database user
        password: Database password
        database: Database name
        url: Connection URL; takes precedence over the discrete fields
        batch_size: Rows per INSERT statement
        single_transaction: Commit once at the end (otherwise once per table)
        connect_retries: Extra connection attempts after the first
        retry_backoff: Base delay between connection attempts
        create_tables: Run CREATE TABLE IF NOT EXISTS before inserting
        connection_factory: Callable returning a connection, replaces the driver
    """

    dialect: Dialect = POSTGRES
    default_port = 0
    #: Driver errors that make a connection attempt worth repeating
    retryable_errors: tuple[type[BaseException], ...] = ()
    #: Driver errors raised by failed statements
    driver_errors: tuple[type[BaseException], ...] = ()

    def __init__(
        self,
        host: str = "localhost",
        port: int | None = None,
        user: str = "",
        password: str = "",
        database: str = "",
        url: str | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        single_transaction: bool = True,
        connect_retries: int = DEFAULT_CONNECT_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        create_tables: bool = False,
        connection_factory: Callable[[], Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(batch_size)
        self.host = host
        self.port = port or self.default_port
        self.user = user
        self.password = password
        self.database = database
        self.url = url
        self.single_transaction = single_transaction
        self.discards_on_abort = single_transaction
        self.connect_retries = max(connect_retries, 0)
        self.retry_backoff = retry_backoff
        self.create_tables = create_tables
        self.connection_factory = connection_factory
        self._sleep = sleep
        self._jitter = random.Random()
        self.conn: Any = None
        self._schema: SchemaDefinition | None = None

    @abstractmethod
    def _connect(self) -> Any:
        """Open a driver connection with autocommit off."""

    def open(self, schema: SchemaDefinition, order: list[str], seed: int) -> None:
        self._schema = schema
        self.conn = self._connect_with_retry()
        if self.create_tables:
            for table_name in order:
                for statement in self.dialect.create_table(schema.get_table(table_name)):
                    self._execute(statement, None, table_name)
            self._commit()
            logger.info(f"Ensured {len(order)} tables exist on {self._target}")

    def _connect_with_retry(self) -> Any:
        attempts = self.connect_retries + 1
        for attempt in range(attempts):
            try:
                if self.connection_factory is not None:
                    return self.connection_factory()
                return self._connect()
            except self.retryable_errors as e:
                if attempt == attempts - 1:
                    raise SinkError(
                        self.name,
                        f"could not connect to {self._target} after {attempts} attempts: {e}",
                    ) from e
                delay = min(self.retry_backoff * (2**attempt), MAX_RETRY_DELAY)
                delay += self._jitter.uniform(0, self.retry_backoff)
                logger.warning(
                    f"Connection to {self._target} failed "
                    f"(attempt {attempt + 1}/{attempts}): {e}. Retrying in {delay:.2f}s"
                )
                self._sleep(delay)
            except self.driver_errors as e:
                raise SinkError(self.name, f"could not connect to {self._target}: {e}") from e
        raise SinkError(self.name, f"could not connect to {self._target}")

    def write_table(
        self, table: TableDefinition, batches: Iterable[list[GeneratedRecord]]
    ) -> SinkResult:
        if self.conn is None:
            raise SinkError(self.name, "sink is not open", table.name)
        columns = table.column_names
        written = 0
        for batch in batches:
            if not batch:
                continue
            sql = self.dialect.insert_placeholders(table, len(batch))
            # Flatten values: [row1_col1, row1_col2, row2_col1, row2_col2, ...]
            values = [value for record in batch for value in record.as_tuple(columns)]
            self._execute(sql, values, table.name)
            written += len(batch)

        if not self.single_transaction:
            self._commit()
        logger.debug(f"Inserted {written} rows into '{table.name}'")
        return SinkResult(table=table.name, rows_written=written)

    def finalize(self) -> None:
        try:
            self._commit()
        finally:
            self._close()

    def abort(self, error: BaseException | None = None) -> None:
        if self.conn is None:
            return
        try:
            self.conn.rollback()
            logger.warning(f"Rolled back seed on {self._target}")
        except Exception as e:  # abort must not raise
            logger.error(f"Rollback on {self._target} failed: {e}")
        finally:
            self._close()

    def _execute(self, sql: str, params: list[Any] | None, table: str) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
        except self.driver_errors as e:
            raise SinkError(self.name, str(e).strip(), table) from e

    def _commit(self) -> None:
        try:
            self.conn.commit()
        except self.driver_errors as e:
            raise SinkError(self.name, f"commit failed: {e}") from e

    def _close(self) -> None:
        if self.conn is None:
            return
        try:
            self.conn.close()
        except self.driver_errors as e:
            logger.warning(f"Closing connection to {self._target} failed: {e}")
        finally:
            self.conn = None

    @property
    def _target(self) -> str:
        if self.url:
            parsed = urlparse(self.url)
            host = parsed.hostname or self.host
            return f"{host}:{parsed.port or self.default_port}/{parsed.path.lstrip('/')}"
        return f"{self.host}:{self.port}/{self.database}"


class PostgresSink(ConnectionSink):
    """Seed a PostgreSQL database via psycopg."""

    name = "postgres"
    dialect = POSTGRES
    default_port = 5432
    retryable_errors = (psycopg.OperationalError,)
    driver_errors = (psycopg.Error,)

    def _connect(self) -> psycopg.Connection:
        if self.url:
            return psycopg.connect(self.url, autocommit=False, connect_timeout=CONNECT_TIMEOUT)
        return psycopg.connect(
            host=self.host,
            port=self.port,
            user=self.user or None,
            password=self.password or None,
            dbname=self.database or None,
            autocommit=False,
            connect_timeout=CONNECT_TIMEOUT,
        )


class MySQLSink(ConnectionSink):
    """Seed a MySQL database via PyMySQL."""

    name = "mysql"
    dialect = MYSQL
    default_port = 3306
    retryable_errors = (pymysql.err.OperationalError,)
    driver_errors = (pymysql.MySQLError,)

    def _connect(self) -> pymysql.connections.Connection:
        host, port, user, password, database = (
            self.host,
            self.port,
            self.user,
            self.password,
            self.database,
        )
        if self.url:
            parsed = urlparse(self.url)
            host = parsed.hostname or host
            port = parsed.port or self.default_port
            user = unquote(parsed.username or user)
            password = unquote(parsed.password or password)
            database = parsed.path.lstrip("/") or database
        return pymysql.connect(
            host=host,
            port=port,
            user=user,
            password=password,
            database=database or None,
            charset="utf8mb4",
            autocommit=False,
            connect_timeout=CONNECT_TIMEOUT,
        )
