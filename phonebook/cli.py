#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Phonebook (SQLite / PostgreSQL)

Commands:
  add NAME PHONE        Create a new record
  del ID...             Delete one or more records by id
  edit ID NAME PHONE    Replace name and phone of a record
  show [SUBSTRING]      Print records, optionally only names containing SUBSTRING
  serve                 Run the JSON HTTP API on localhost:3000
  help                  Print usage

Notes:
- Connection settings come from a YAML config (default .phonebookrc, see --config).
- The table is created on first use; every command runs against one connection.
"""
from __future__ import annotations

import argparse
import logging
import sys
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .db import DbHandle, SharedDb, get_conn, load_settings
from .errors import PhonebookError, ValidationError
from .repository import record_repo
from .services.record_svc import parse_id, parse_ids, validate_fields

logger = logging.getLogger(__name__)

SERVE_HOST = "localhost"
SERVE_PORT = 3000

HELP = """Usage: phonebook COMMAND [ARG]...
Commands:
    add NAME PHONE     - create new record;
    del ID1 ID2...     - delete records;
    edit ID NAME PHONE - edit record;
    show               - display all records;
    show STRING        - display records which contain a given substring in the name;
    serve              - serve the HTTP API on localhost:3000;
    help               - display this help."""

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


@dataclass
class CommandResult:
    exit_code: int = EXIT_OK
    output: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class Command:
    func: Callable[[DbHandle, List[str]], CommandResult]
    min_args: int
    max_args: Optional[int]
    usage: str
    check: Optional[Callable[[List[str]], object]] = None

    def accepts(self, n: int) -> bool:
        if n < self.min_args:
            return False
        return self.max_args is None or n <= self.max_args


def format_records(records: Sequence[record_repo.Record]) -> List[str]:
    width = max((len(r.name) for r in records), default=0)
    return [f"{str(r.id).rjust(3)}   {r.name.ljust(width)}   {r.phone}" for r in records]


# ---------------- Commands ----------------

def cmd_add(conn: DbHandle, args: List[str]) -> CommandResult:
    name, phone = validate_fields(args[0], args[1])
    n = record_repo.insert_record(conn, name, phone)
    return CommandResult(output=[f"{n} rows affected"])


def cmd_del(conn: DbHandle, args: List[str]) -> CommandResult:
    record_repo.delete_records(conn, parse_ids(args))
    return CommandResult()


def cmd_edit(conn: DbHandle, args: List[str]) -> CommandResult:
    record_id = parse_id(args[0])
    name, phone = validate_fields(args[1], args[2])
    affected = record_repo.update_record(conn, record_id, name, phone)
    if affected == 0:
        logger.info("edit of record %s matched no rows", record_id)
    return CommandResult()


def cmd_show(conn: DbHandle, args: List[str]) -> CommandResult:
    records = record_repo.list_records(conn, args[0] if args else None)
    return CommandResult(output=format_records(records))


def _check_add(args: List[str]) -> None:
    validate_fields(args[0], args[1])


def _check_edit(args: List[str]) -> None:
    parse_id(args[0])
    validate_fields(args[1], args[2])


def cmd_serve(conn: DbHandle, args: List[str]) -> CommandResult:
    import uvicorn

    from .api import create_app

    app = create_app(SharedDb(conn))
    logger.info("serving on http://%s:%s", SERVE_HOST, SERVE_PORT)
    uvicorn.run(app, host=SERVE_HOST, port=SERVE_PORT)
    return CommandResult()


COMMANDS: Dict[str, Command] = {
    "add": Command(cmd_add, 2, 2, "Usage: phonebook add NAME PHONE", _check_add),
    "del": Command(cmd_del, 1, None, "Usage: phonebook del ID...", parse_ids),
    "edit": Command(cmd_edit, 3, 3, "Usage: phonebook edit ID NAME PHONE", _check_edit),
    "show": Command(cmd_show, 0, 1, "Usage: phonebook show [SUBSTRING]"),
    "serve": Command(cmd_serve, 0, 0, "Usage: phonebook serve"),
}


# ---------------- Dispatch ----------------

def dispatch(
    command: Optional[str],
    args: List[str],
    connect: Callable[[], AbstractContextManager],
) -> CommandResult:
    """
    Map a verb and its positional arguments to a store call.

    Usage problems come back as a CommandResult with a non-zero exit code;
    store, connection and config errors propagate to the caller.
    """
    if command is None:
        return CommandResult(EXIT_USAGE, error="no command supplied")
    if command == "help":
        return CommandResult(output=[HELP])

    entry = COMMANDS.get(command)
    if entry is None:
        return CommandResult(EXIT_USAGE, error=f"invalid command: {command}")
    if not entry.accepts(len(args)):
        return CommandResult(EXIT_USAGE, error=entry.usage)

    # arguments are checked before any config is read or connection opened
    try:
        if entry.check is not None:
            entry.check(args)
        with connect() as conn:
            record_repo.ensure_schema(conn)
            return entry.func(conn, args)
    except ValidationError as e:
        return CommandResult(EXIT_USAGE, error=f"{e}\n{entry.usage}")


# ---------------- Entry ----------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phonebook",
        description="Phonebook records (SQLite / PostgreSQL)",
        add_help=False,
    )
    parser.add_argument("--config", default=None, help="YAML config path (default .phonebookrc)")
    parser.add_argument("command", nargs="?")
    parser.add_argument("args", nargs=argparse.REMAINDER)
    return parser


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    def connect():
        settings = load_settings(args.config)
        logging.getLogger().setLevel(settings.log_level)
        return get_conn(settings)

    try:
        result = dispatch(args.command, list(args.args), connect)
    except PhonebookError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FATAL

    for line in result.output:
        print(line)
    if result.error:
        print(f"error: {result.error}", file=sys.stderr)
    return result.exit_code


def main():
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(run())


if __name__ == "__main__":
    main()
