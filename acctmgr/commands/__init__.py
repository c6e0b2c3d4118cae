"""Command processing: clause parsing, provisioning and applying changes."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Callable, Optional, TextIO

from acctmgr.backends import logger
from acctmgr.backends.base import BaseClient
from acctmgr.common.structures import AcctmgrConfiguration
from acctmgr.common.utils import commit_check, get_uid


class Scope(IntFlag):
    """Which entity a condition or a record constrains."""

    NONE = 0
    USER = 1
    ASSOCIATION = 2
    BOTH = 3


class Diagnostics:
    """Collects errors of one invocation.

    Errors are printed to the error stream right away and make the
    invocation fail at the end.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        """Inits empty error list."""
        self.stream = stream
        self.errors: list[str] = []

    def error(self, message: str) -> None:
        """Reports an error."""
        self.errors.append(message)
        logger.debug("Reported error: %s", message)
        print(f" {message}", file=self.stream or sys.stderr)

    @property
    def error_count(self) -> int:
        """Number of errors reported so far."""
        return len(self.errors)

    @property
    def failed(self) -> bool:
        """Whether any error was reported."""
        return bool(self.errors)

    @property
    def exit_code(self) -> int:
        """Process exit status."""
        return 1 if self.errors else 0


@dataclass
class CommandContext:
    """Collaborators of a command handler."""

    client: BaseClient
    configuration: AcctmgrConfiguration = field(default_factory=AcctmgrConfiguration)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    confirm: Callable[[str], bool] = commit_check
    resolve_uid: Callable[[str], Optional[int]] = get_uid
