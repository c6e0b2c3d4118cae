"""Shared utility functions of the tool.

This module provides:
- Configuration loading from YAML files and the environment
- Storage client creation for the configured backend
- Interactive confirmation and uid lookup used by the commands
- Advisory notice raised while mutations are in flight
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
import pwd
import threading
from pathlib import Path
from typing import Iterator, Optional

import yaml
from pydantic import ValidationError

from acctmgr.backends import BackendType, logger
from acctmgr.backends.base import BaseClient
from acctmgr.backends.exceptions import ConfigurationError
from acctmgr.backends.file_backend import DEFAULT_DATABASE_PATH
from acctmgr.backends.file_backend.client import FileClient
from acctmgr.backends.slurm_backend import SLURM_CONTAINER_NAME
from acctmgr.backends.slurm_backend.client import SlurmClient
from acctmgr.common import (
    ACCTMGR_CONFIG_PATH,
    BUSY_DATABASE_NOTICE,
    TRACK_WCKEY_VARIABLE,
    structures,
)

# Set while a mutating storage section is in flight
mutation_in_progress = threading.Event()


def load_configuration(config_file_path: str) -> structures.AcctmgrConfiguration:
    """Load configuration from YAML file.

    A missing file yields the default configuration.

    Raises:
        ConfigurationError: If the configuration file is malformed or invalid
    """
    config = {}
    path = Path(config_file_path)
    if path.exists():
        try:
            with path.open(encoding="UTF-8") as stream:
                config = yaml.safe_load(stream) or {}
        except yaml.YAMLError as e:
            message = f"Unable to parse config file {config_file_path}: {e}"
            raise ConfigurationError(message) from e
    else:
        logger.info("Config file %s not found, using defaults", config_file_path)

    track_wckey = os.environ.get(TRACK_WCKEY_VARIABLE)
    if track_wckey is not None:
        config["track_wckey"] = track_wckey.lower() in ("true", "yes", "1")

    try:
        configuration = structures.AcctmgrConfiguration(**config)
    except ValidationError as e:
        message = f"Invalid configuration in {config_file_path}: {e}"
        raise ConfigurationError(message) from e

    logger.setLevel(getattr(logging, configuration.log_level))

    # Handle Sentry configuration - initialize if DSN is provided
    if configuration.sentry_dsn:
        import sentry_sdk  # noqa: PLC0415

        sentry_sdk.init(dsn=configuration.sentry_dsn)

    configuration.config_file_path = config_file_path
    return configuration


def get_client(configuration: structures.AcctmgrConfiguration) -> BaseClient:
    """Creates the storage client for the configured backend."""
    settings = configuration.backend_settings
    if configuration.backend_type == BackendType.SLURM:
        container_name = settings.get("container_name", SLURM_CONTAINER_NAME)
        logger.debug("Using SLURM accounting backend")
        return SlurmClient(container_name or None)
    database_path = settings.get("database_path", DEFAULT_DATABASE_PATH)
    logger.debug("Using file accounting backend %s", database_path)
    return FileClient(database_path)


def commit_check(message: str) -> bool:
    """Asks the operator a yes/no question, anything but yes means no."""
    try:
        answer = input(f"{message} (N/y): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def assume_yes(message: str) -> bool:
    """Answers yes to every question, used in immediate mode."""
    logger.debug("Assuming yes: %s", message)
    return True


def get_uid(name: str) -> Optional[int]:
    """Returns the system uid of the user name or None if it is unknown."""
    try:
        return pwd.getpwnam(name).pw_uid
    except KeyError:
        return None


def _warn_busy() -> None:
    if mutation_in_progress.is_set():
        logger.warning(BUSY_DATABASE_NOTICE)


@contextlib.contextmanager
def mutation_notice(delay: float) -> Iterator[None]:
    """Marks a mutating section and warns if it takes longer than the delay."""
    mutation_in_progress.set()
    timer = threading.Timer(delay, _warn_busy)
    timer.daemon = True
    timer.start()
    try:
        yield
    finally:
        timer.cancel()
        mutation_in_progress.clear()


def build_parser() -> argparse.ArgumentParser:
    """Creates parser of the command line."""
    parser = argparse.ArgumentParser(
        prog="acctmgr", description="Manage users of the accounting database."
    )
    parser.add_argument(
        "--config-file",
        "-c",
        help=f"Path to the config file; default is {ACCTMGR_CONFIG_PATH}",
        dest="config_file_path",
        default=ACCTMGR_CONFIG_PATH,
        required=False,
    )
    parser.add_argument(
        "--immediate", "-i", help="Answer yes to every question", action="store_true"
    )
    parser.add_argument(
        "--parsable",
        "-p",
        help="Delimit listing fields by '|' with a trailing '|'",
        dest="parsable",
        action="store_const",
        const=1,
        default=0,
    )
    parser.add_argument(
        "--parsable2",
        "-P",
        help="Delimit listing fields by '|' without a trailing '|'",
        dest="parsable",
        action="store_const",
        const=2,
    )
    parser.add_argument(
        "--noheader", "-n", help="Don't print listing headers", action="store_true"
    )
    parser.add_argument(
        "--associations",
        "-s",
        help="List users with their associations",
        action="store_true",
    )
    parser.add_argument("--verbose", "-v", help="Enable debug logging", action="store_true")
    parser.add_argument("command", help="add, delete, list or modify")
    parser.add_argument("entity", help="user or coordinator")
    parser.add_argument("clauses", nargs=argparse.REMAINDER, help="Directives of the command")
    return parser


def init_configuration(
    argv: Optional[list[str]] = None,
) -> tuple[structures.AcctmgrConfiguration, argparse.Namespace]:
    """Initialize configuration from CLI arguments and config file.

    Command line flags take precedence over the file.

    Raises:
        ConfigurationError: If the configuration file is malformed or invalid
    """
    cli_args = build_parser().parse_args(argv)
    config_file_path = cli_args.config_file_path
    logger.debug("Using %s as a config source", config_file_path)

    configuration = load_configuration(config_file_path)
    configuration.parsable = cli_args.parsable
    configuration.no_header = cli_args.noheader
    if cli_args.immediate:
        configuration.immediate = True
    if cli_args.associations:
        configuration.with_associations = True
    if cli_args.verbose:
        logger.setLevel(logging.DEBUG)
    return configuration, cli_args
