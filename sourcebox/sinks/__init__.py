"""Output sinks for generated records."""

from __future__ import annotations

from sourcebox.config import SeedConfig
from sourcebox.sinks.base import Sink, SinkResult
from sourcebox.sinks.connection import ConnectionSink, MySQLSink, PostgresSink
from sourcebox.sinks.dialects import MYSQL, POSTGRES, Dialect, get_dialect
from sourcebox.sinks.dry_run import DryRunSink
from sourcebox.sinks.file import COMPLETE_MARKER, INCOMPLETE_MARKER, FileSink

CONNECTION_SINKS: dict[str, type[ConnectionSink]] = {
    "postgres": PostgresSink,
    "mysql": MySQLSink,
}


def create_sink(config: SeedConfig) -> Sink:
    """
    Build the sink a configuration asks for.

    Dry runs always get a DryRunSink, whatever ``sink`` says, so nothing
    external is touched.
    """
    if config.dry_run:
        return DryRunSink(batch_size=config.database.batch_size)

    if config.sink == "file":
        out = config.output
        return FileSink(
            path=out.path,
            dialect=out.dialect,
            batch_size=out.batch_size,
            include_ddl=out.include_ddl,
            transaction=out.transaction,
        )

    db = config.database
    return CONNECTION_SINKS[config.sink](
        host=db.host,
        port=db.port_for(config.sink),
        user=db.user,
        password=db.password.get_secret_value(),
        database=db.name,
        url=db.url,
        batch_size=db.batch_size,
        single_transaction=db.single_transaction,
        connect_retries=db.connect_retries,
        retry_backoff=db.retry_backoff,
        create_tables=db.create_tables,
    )


__all__ = [
    "COMPLETE_MARKER",
    "ConnectionSink",
    "Dialect",
    "DryRunSink",
    "FileSink",
    "INCOMPLETE_MARKER",
    "MYSQL",
    "MySQLSink",
    "POSTGRES",
    "PostgresSink",
    "Sink",
    "SinkResult",
    "create_sink",
    "get_dialect",
]
