"""Command descriptors, executors and the dispatcher behind tsdb-cli."""

import copy
import itertools
import logging
import random
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, TextIO

from tsdb_cli import (
    ArgumentError,
    ConfigError,
    TSDBClient,
    TSDBConnectionError,
    TSDBError,
    TSDBRequestError,
    UnknownCommandError,
)
from tsdb_cli.config import Config, load_config, write_default_config
from tsdb_cli.connection import ConnectionFacade
from tsdb_cli.table import render_as
from tsdb_cli.validation import (
    BackfillArgs,
    validate_backfill,
    validate_dropseries,
    validate_gen_config,
    validate_query,
    validate_series,
)

logger = logging.getLogger(__name__)

PROG = "tsdb-cli"
CHUNK_SIZE = 10000
COUNT_RANGE = (0, 100)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


# --- Application context ---


@dataclass
class AppContext:
    """Everything a command needs, built once by the entry point."""

    config_path: Optional[str] = None
    overrides: Dict[str, Any] = field(default_factory=dict)
    output_format: str = "plain"
    out: TextIO = field(default_factory=lambda: sys.stdout)
    err: TextIO = field(default_factory=lambda: sys.stderr)
    config: Optional[Config] = None
    facade: Optional[ConnectionFacade] = None
    client_factory: Optional[Callable[[Config], TSDBClient]] = None

    def load_config(self) -> Config:
        if self.config is None:
            self.config = load_config(self.config_path).with_overrides(**self.overrides)
        return self.config

    def open_facade(self) -> ConnectionFacade:
        if self.facade is None:
            self.facade = ConnectionFacade(self.load_config(), self.client_factory)
        return self.facade


# --- Backfill ---


def generate_points(
    start: datetime,
    end: datetime,
    interval_ms: int,
    template: Dict[str, Any],
    rng: Optional[random.Random] = None,
) -> Iterator[Dict[str, Any]]:
    """
    Yields one point every interval_ms from start (inclusive) to end
    (exclusive). Each point is a deep copy of template with 'time' set to
    its instant and 'count' set to a random integer in COUNT_RANGE.
    """
    if interval_ms <= 0:
        raise ValueError("interval_ms must be positive")
    rng = rng or random.Random()
    step = timedelta(milliseconds=interval_ms)
    cursor = start
    while cursor < end:
        point = copy.deepcopy(template)
        point["time"] = cursor
        point["count"] = rng.randint(*COUNT_RANGE)
        yield point
        cursor += step


def execute_backfill(ctx: AppContext, client: TSDBClient, args: BackfillArgs) -> None:
    points = generate_points(args.start, args.end, args.interval_ms, args.template)
    total = 0
    # Chunks are generated and written strictly one after the other
    while True:
        chunk = list(itertools.islice(points, CHUNK_SIZE))
        if not chunk:
            break
        try:
            client.write_points(args.series, chunk)
        except (TSDBError, ValueError) as e:
            raise TSDBRequestError(f'backfill "{args.series}"', e) from e
        total += len(chunk)
        ctx.err.write(f"Wrote {len(chunk)} points to '{args.series}'\n")
    ctx.err.write(f"Backfill of '{args.series}' done: {total} points written\n")


# --- Other executors ---


def execute_dropseries(ctx: AppContext, client: TSDBClient, series: str) -> None:
    try:
        client.delete_series(series)
    except TSDBError as e:
        raise TSDBRequestError(f'drop series "{series}"', e) from e
    ctx.out.write(f"Dropped series '{series}'\n")


def execute_series(ctx: AppContext, client: TSDBClient, _args: None) -> None:
    try:
        names = client.get_list_series()
    except TSDBError as e:
        raise TSDBRequestError("listing series", e) from e
    for name in names:
        ctx.out.write(f"{name}\n")


def execute_query(ctx: AppContext, client: TSDBClient, query: str) -> None:
    try:
        tables = client.query(query)
    except TSDBError as e:
        raise TSDBRequestError(f'query "{query}"', e) from e
    logger.info(f"Query returned {len(tables)} table(s)")
    for i, table in enumerate(tables):
        if i:
            ctx.out.write("\n")
        if table.name:
            logger.info(f"Table {i + 1}: {table.name}")
        render_as(table, ctx.output_format, ctx.out)


def execute_gen_config(ctx: AppContext, _client: None, _args: None) -> None:
    try:
        path = write_default_config(ctx.config_path)
    except OSError as e:
        raise ConfigError(f"Error generating config file: {e}") from e
    ctx.out.write(f"Default config file generated at {path}\n")


# --- Descriptors ---


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    usage: str
    summary: str
    validator: Callable[[Sequence[str]], Any]
    executor: Callable[[AppContext, Optional[TSDBClient], Any], None]
    requires_client: bool = True


COMMANDS: Dict[str, CommandDescriptor] = {
    d.name: d
    for d in (
        CommandDescriptor(
            name="backfill",
            usage="backfill SERIES START END INTERVAL TEMPLATE",
            summary="Write synthetic points every INTERVAL ms from START to END.",
            validator=validate_backfill,
            executor=execute_backfill,
        ),
        CommandDescriptor(
            name="dropseries",
            usage="dropseries SERIES",
            summary="Drop a series.",
            validator=validate_dropseries,
            executor=execute_dropseries,
        ),
        CommandDescriptor(
            name="series",
            usage="series",
            summary="List series names.",
            validator=validate_series,
            executor=execute_series,
        ),
        CommandDescriptor(
            name="query",
            usage="query QUERY",
            summary="Run a query and print the result tables.",
            validator=validate_query,
            executor=execute_query,
        ),
        CommandDescriptor(
            name="gen-config",
            usage="gen-config",
            summary="Write a default config file.",
            validator=validate_gen_config,
            executor=execute_gen_config,
            requires_client=False,
        ),
    )
}


def usage_text(
    prog: str = PROG, commands: Optional[Dict[str, CommandDescriptor]] = None
) -> str:
    lines = [f"usage: {prog} [options] COMMAND [ARGS...]", "", "commands:"]
    for descriptor in (COMMANDS if commands is None else commands).values():
        lines.append(f"  {prog} {descriptor.usage}")
    return "\n".join(lines) + "\n"


# --- Dispatcher ---


class Dispatcher:
    """Validates a command, waits for the connection, then runs the command once."""

    def __init__(
        self,
        ctx: AppContext,
        commands: Optional[Dict[str, CommandDescriptor]] = None,
        prog: str = PROG,
    ):
        self.ctx = ctx
        self.commands = COMMANDS if commands is None else commands
        self.prog = prog

    def lookup(self, name: str) -> CommandDescriptor:
        try:
            return self.commands[name]
        except KeyError:
            raise UnknownCommandError(name) from None

    def _fail(self, message: str) -> int:
        self.ctx.err.write(f"Error: {message}\n")
        return EXIT_FAILURE

    def run(self, name: str, raw_args: Sequence[str]) -> int:
        """
        Runs one command and returns the process exit status.

        Returns:
            0 on success, 2 for an unknown command or invalid arguments
            (usage is printed), 1 for config, connection or request failures.
        """
        try:
            descriptor = self.lookup(name)
            parsed = descriptor.validator(list(raw_args))
        except ArgumentError as e:
            self.ctx.err.write(f"Error: {e}\n")
            self.ctx.err.write(usage_text(self.prog, self.commands))
            return EXIT_USAGE

        client = None
        if descriptor.requires_client:
            try:
                facade = self.ctx.open_facade()
                facade.connect()
                client = facade.wait()
            except ConfigError as e:
                return self._fail(str(e))
            except TSDBConnectionError as e:
                logger.debug("Handshake failed", exc_info=True)
                return self._fail(str(e))

        logger.info(f"Running '{name}'")
        try:
            descriptor.executor(self.ctx, client, parsed)
        except TSDBError as e:
            logger.debug(f"Command '{name}' failed", exc_info=True)
            return self._fail(str(e))
        return EXIT_OK
