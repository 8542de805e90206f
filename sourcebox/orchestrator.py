"""
Seed generation orchestrator.

Drives a run through Loading → Resolving → Generating → Writing →
Completed (or Failed). Independent tables are generated concurrently once
all of their parents are complete; writes always happen sequentially in
resolution order, so a sink never sees a child before its parents.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from sourcebox.catalog import resolve_schema
from sourcebox.config import SeedConfig
from sourcebox.dependency import resolve_order
from sourcebox.engine import CancelToken, GenerationEngine
from sourcebox.exceptions import ConfigurationError, SourceBoxError
from sourcebox.models import SchemaDefinition
from sourcebox.records import GeneratedRecord, RecordSet
from sourcebox.rng import new_run_seed
from sourcebox.sinks import DryRunSink, Sink, create_sink

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RESOLVING = "resolving"
    GENERATING = "generating"
    WRITING = "writing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SeedRun:
    """
    Report of one seeding run.

    Attributes:
        schema: Schema name
        seed: Run seed (reuse it to reproduce the same records)
        sink: Sink name
        dry_run: Whether nothing external was written
        state: COMPLETED or FAILED
        resolution_order: Tables in generation/write order
        targets: Rows requested per table
        table_counts: Rows written per table (empty when a failure discarded them)
        rolled_back: Whether a failure undid everything the sink had written
        elapsed: Wall-clock seconds
        error_kind: Exception kind when failed
        error_message: Exception message when failed
        error: The exception itself when failed
    """

    schema: str
    seed: int | None
    sink: str
    dry_run: bool
    state: RunState
    resolution_order: list[str] = field(default_factory=list)
    targets: dict[str, int] = field(default_factory=dict)
    table_counts: dict[str, int] = field(default_factory=dict)
    rolled_back: bool = False
    elapsed: float = 0.0
    error_kind: str | None = None
    error_message: str | None = None
    error: BaseException | None = field(default=None, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    @property
    def total_rows(self) -> int:
        return sum(self.table_counts.values())

    def raise_for_failure(self) -> None:
        """Re-raise the run's error, if it failed."""
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly summary."""
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "error"}
        data["state"] = self.state.value
        data["total_rows"] = self.total_rows
        return data


class SeedOrchestrator:
    """
    Orchestrate seed data generation across all tables of a schema.

    Args:
        config: Seeding configuration
        sink: Destination; defaults to the sink the configuration names
        cancel: Cancellation token; call :meth:`cancel` from another thread
            to stop a run between rows or batches

    Example:
        >>> config = SeedConfig(schema_name="retail-orders", dry_run=True)
        >>> run = SeedOrchestrator(config).run()
        >>> run.state
        <RunState.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        config: SeedConfig,
        sink: Sink | None = None,
        cancel: CancelToken | None = None,
    ):
        self.config = config
        self._sink = sink
        self.cancel_token = cancel or CancelToken()
        self.state = RunState.IDLE

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation of the current run."""
        self.cancel_token.cancel(reason)

    def run(self, schema: SchemaDefinition | str | None = None) -> SeedRun:
        """
        Execute a seeding run.

        Args:
            schema: SchemaDefinition, catalog name or path; defaults to the
                configured ``schema_name``

        Returns:
            SeedRun describing the outcome. Failures are reported, not
            raised; call :meth:`SeedRun.raise_for_failure` to raise them.
        """
        started = time.monotonic()
        self.cancel_token.set_deadline(self.config.timeout)
        sink = DryRunSink() if self.config.dry_run else self._sink
        progress: dict[str, Any] = {
            "schema": schema.name if isinstance(schema, SchemaDefinition) else str(schema or ""),
            "seed": self.config.generation.seed,
            "order": [],
            "targets": {},
            "counts": {},
            "sink": sink,
            "opened": False,
            "rolled_back": False,
        }

        try:
            self._run(schema, progress)
        except SourceBoxError as e:
            self._abort(progress, e)
            self._transition(RunState.FAILED)
            logger.error(f"Seed run failed: {e.kind}: {str(e).splitlines()[0]}")
            return self._report(progress, started, error=e)
        except BaseException as e:
            self._abort(progress, e)
            self._transition(RunState.FAILED)
            raise

        self._transition(RunState.COMPLETED)
        run = self._report(progress, started)
        logger.info(
            f"Seeded {run.total_rows} rows into {len(run.table_counts)} tables "
            f"via {run.sink} in {run.elapsed:.2f}s (seed {run.seed})"
        )
        return run

    def _run(self, schema: SchemaDefinition | str | None, progress: dict[str, Any]) -> None:
        config = self.config

        self._transition(RunState.LOADING)
        if not isinstance(schema, SchemaDefinition):
            identifier = schema or config.schema_name
            if not identifier:
                raise ConfigurationError(
                    "No schema given.\n\n"
                    "Suggestions:\n"
                    "1. Pass --schema with a catalog name or a schema file path\n"
                    "2. Set schema_name in sourcebox.toml"
                )
            schema = resolve_schema(identifier, config.schemas_dir)
        progress["schema"] = schema.name

        seed = config.generation.seed
        if seed is None:
            seed = new_run_seed()
        progress["seed"] = seed

        self._transition(RunState.RESOLVING)
        order = resolve_order(schema)
        targets = {
            table: config.count_for(table, schema.get_table(table).record_count)
            for table in order
        }
        progress["order"] = order
        progress["targets"] = targets

        engine = GenerationEngine(
            schema,
            seed,
            counts=targets,
            locale=config.generation.locale,
            unique_retry_limit=config.generation.unique_retry_limit,
            cancel=self.cancel_token,
        )
        deferred = self._deferred_tables(schema, order, targets)

        self._transition(RunState.GENERATING)
        record_sets = self._generate(engine, schema, order, deferred)

        self._transition(RunState.WRITING)
        sink = progress["sink"]
        if sink is None:
            sink = create_sink(config)
            progress["sink"] = sink
        # abort is safe on a half-opened sink
        progress["opened"] = True
        sink.open(schema, order, seed)

        for table_name in order:
            self.cancel_token.check()
            table = schema.get_table(table_name)
            if table_name in record_sets:
                records = record_sets[table_name]
                batches = records.batches(sink.batch_size)
            else:
                parents = {p: record_sets[p] for p in table.parent_tables}
                table_run = engine.table_run(table_name, parents)
                records = table_run.records
                if targets[table_name] > config.generation.stream_threshold:
                    logger.info(f"Streaming {targets[table_name]} rows for '{table_name}'")
                    batches = table_run.batches(sink.batch_size)
                else:
                    batches = table_run.run().batches(sink.batch_size)
                record_sets[table_name] = records

            result = sink.write_table(table, self._checked(batches))
            records.release()
            progress["counts"][table_name] = result.rows_written
            logger.info(f"Wrote {result.rows_written} rows to '{table_name}'")

        sink.finalize()

    def _deferred_tables(
        self, schema: SchemaDefinition, order: list[str], targets: dict[str, int]
    ) -> set[str]:
        """Streamed tables and everything that depends on them."""
        threshold = self.config.generation.stream_threshold
        deferred = {t for t in order if targets[t] > threshold}
        for table_name in order:
            if schema.get_table(table_name).parent_tables & deferred:
                deferred.add(table_name)
        return deferred

    def _generate(
        self,
        engine: GenerationEngine,
        schema: SchemaDefinition,
        order: list[str],
        deferred: set[str],
    ) -> dict[str, RecordSet]:
        """Generate every non-deferred table, concurrently where possible."""
        record_sets: dict[str, RecordSet] = {}
        pending = [t for t in order if t not in deferred]
        workers = self.config.generation.workers

        if workers == 1:
            for table_name in pending:
                record_sets[table_name] = self._generate_one(engine, schema, table_name, record_sets)
            return record_sets

        first_error: BaseException | None = None
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sourcebox") as pool:
            running: dict[Future, str] = {}
            while pending or running:
                if first_error is None:
                    for table_name in list(pending):
                        if schema.get_table(table_name).parent_tables <= record_sets.keys():
                            pending.remove(table_name)
                            future = pool.submit(
                                self._generate_one, engine, schema, table_name, record_sets
                            )
                            running[future] = table_name
                else:
                    pending.clear()
                if not running:
                    break

                finished, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in finished:
                    table_name = running.pop(future)
                    error = future.exception()
                    if error is None:
                        record_sets[table_name] = future.result()
                    elif first_error is None:
                        first_error = error
                        self.cancel_token.cancel(f"table '{table_name}' failed")

        if first_error is not None:
            raise first_error
        return record_sets

    def _generate_one(
        self,
        engine: GenerationEngine,
        schema: SchemaDefinition,
        table_name: str,
        record_sets: dict[str, RecordSet],
    ) -> RecordSet:
        parents = {p: record_sets[p] for p in schema.get_table(table_name).parent_tables}
        records = engine.generate_table(table_name, parents)
        logger.info(f"Generated {len(records)} rows for '{table_name}'")
        return records

    def _checked(
        self, batches: Iterable[list[GeneratedRecord]]
    ) -> Iterator[list[GeneratedRecord]]:
        for batch in batches:
            self.cancel_token.check()
            yield batch

    def _abort(self, progress: dict[str, Any], error: BaseException) -> None:
        sink = progress["sink"]
        if sink is None or not progress["opened"]:
            return
        sink.abort(error)
        if sink.discards_on_abort:
            discarded = sum(progress["counts"].values())
            logger.warning(f"Discarded {discarded} rows written before the failure")
            progress["counts"].clear()
            progress["rolled_back"] = True

    def _transition(self, state: RunState) -> None:
        logger.info(f"Seed run: {self.state.value} → {state.value}")
        self.state = state

    def _report(
        self, progress: dict[str, Any], started: float, error: SourceBoxError | None = None
    ) -> SeedRun:
        sink = progress["sink"]
        if sink is not None:
            sink_name = sink.name
        else:
            sink_name = "dry-run" if self.config.dry_run else self.config.sink
        return SeedRun(
            schema=progress["schema"],
            seed=progress["seed"],
            sink=sink_name,
            dry_run=self.config.dry_run,
            state=RunState.FAILED if error is not None else RunState.COMPLETED,
            resolution_order=list(progress["order"]),
            targets=dict(progress["targets"]),
            table_counts=dict(progress["counts"]),
            rolled_back=progress["rolled_back"],
            elapsed=time.monotonic() - started,
            error_kind=error.kind if error is not None else None,
            error_message=str(error) if error is not None else None,
            error=error,
        )


def run_seed(
    config: SeedConfig,
    schema: SchemaDefinition | str | None = None,
    sink: Sink | None = None,
) -> SeedRun:
    """
    Run one seed with the given configuration.

    Example:
        >>> run = run_seed(SeedConfig(schema_name="retail-orders", dry_run=True))
        >>> run.table_counts["customers"]
        100
    """
    return SeedOrchestrator(config, sink=sink).run(schema)
