"""Main application module."""

from __future__ import annotations

import sys
from typing import Callable, Optional

from acctmgr.backends import logger
from acctmgr.backends.base import BaseClient
from acctmgr.backends.exceptions import BackendError, ConfigurationError
from acctmgr.commands import CommandContext, Diagnostics
from acctmgr.commands.coordinators import add_coordinator, delete_coordinator
from acctmgr.commands.tokenizer import KeywordTable
from acctmgr.commands.users import add_user, delete_users, list_users, modify_users
from acctmgr.common import utils

COMMANDS = KeywordTable(
    [
        ("add", 1, "add"),
        ("create", 1, "add"),
        ("list", 1, "list"),
        ("show", 1, "list"),
        ("modify", 1, "modify"),
        ("update", 1, "modify"),
        ("delete", 1, "delete"),
        ("remove", 1, "delete"),
    ]
)

ENTITIES = KeywordTable([("user", 1), ("coordinator", 2)])

Handler = Callable[[CommandContext, list[str]], object]

DISPATCH: dict[tuple[str, str], Handler] = {
    ("add", "user"): add_user,
    ("add", "coordinator"): add_coordinator,
    ("list", "user"): list_users,
    ("modify", "user"): modify_users,
    ("delete", "user"): delete_users,
    ("delete", "coordinator"): delete_coordinator,
}


def run(argv: Optional[list[str]] = None, client: Optional[BaseClient] = None) -> int:
    """Runs one command and returns the exit status.

    The client is created from the configuration unless given.
    """
    try:
        configuration, cli_args = utils.init_configuration(argv)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    diagnostics = Diagnostics()
    command = COMMANDS.match(cli_args.command)
    entity = ENTITIES.match(cli_args.entity)
    handler = DISPATCH.get((command, entity)) if command and entity else None
    if handler is None:
        diagnostics.error(f"Unknown request: {cli_args.command} {cli_args.entity}")
        return diagnostics.exit_code

    if client is None:
        try:
            client = utils.get_client(configuration)
        except BackendError as e:
            logger.error("Unable to open accounting database: %s", e)
            return 1
    confirm = utils.assume_yes if configuration.immediate else utils.commit_check
    context = CommandContext(
        client=client, configuration=configuration, diagnostics=diagnostics, confirm=confirm
    )

    logger.debug("Running %s %s with %s", command, entity, cli_args.clauses)
    try:
        handler(context, cli_args.clauses)
    except BackendError as e:
        context.diagnostics.error(f"Problem talking to the database: {e}")
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        return 1
    return context.diagnostics.exit_code


def main() -> None:
    """Entrypoint for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
