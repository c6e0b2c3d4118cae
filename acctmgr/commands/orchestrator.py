"""Routing of built conditions and records to storage and the commit step."""

from __future__ import annotations

import contextlib
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from acctmgr.backends import logger
from acctmgr.backends.exceptions import BackendError, JobsRunningError, OneChangeError
from acctmgr.backends.structures import AssociationCondition
from acctmgr.commands import CommandContext, Scope
from acctmgr.common.utils import mutation_notice

COMMIT_QUESTION = "Would you like to commit changes?"
ONE_CHANGE_HINT = " If you are changing a users name you can only specify 1 user at a time."


class ApplyState(Enum):
    """States of the apply/commit workflow."""

    BUILDING = "building"
    VALIDATED = "validated"
    APPLYING = "applying"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTED = "committed"
    DISCARDED = "discarded"
    FAILED = "failed"


TERMINAL_STATES = (ApplyState.COMMITTED, ApplyState.DISCARDED, ApplyState.FAILED)


class ApplyOrchestrator:
    """Drives storage mutations of one invocation and the confirm-or-discard step.

    BUILDING -> VALIDATED -> APPLYING -> AWAITING_CONFIRMATION -> COMMITTED | DISCARDED.
    A storage error moves the workflow to FAILED without committing anything.
    """

    def __init__(self, context: CommandContext) -> None:
        """Inits workflow in BUILDING state."""
        self.context = context
        self.client = context.client
        self.diagnostics = context.diagnostics
        self.state = ApplyState.BUILDING
        self.changed = False
        self.affected: list[str] = []
        self.rejected: list[str] = []

    def validate(self, record_scope: Optional[Scope] = None, strict: bool = True) -> bool:
        """Checks that the invocation is fit to touch storage.

        With strict=False errors reported so far don't block the changes.
        """
        if strict and self.diagnostics.failed:
            logger.debug("Not applying changes, errors were reported")
            self.state = ApplyState.FAILED
            return False
        if record_scope is not None and not record_scope:
            self.diagnostics.error("You didn't give me anything to set")
            self.state = ApplyState.FAILED
            return False
        self.state = ApplyState.VALIDATED
        return True

    @contextlib.contextmanager
    def applying(self) -> Iterator[ApplyOrchestrator]:
        """Marks the mutating section of the workflow."""
        if self.state != ApplyState.VALIDATED:
            message = f"Can't apply changes in {self.state.value} state"
            raise RuntimeError(message)
        self.state = ApplyState.APPLYING
        with mutation_notice(self.context.configuration.notice_delay_seconds):
            yield self

    def fail(self, message: str) -> None:
        """Reports an error and moves the workflow to FAILED."""
        self.diagnostics.error(message)
        self.state = ApplyState.FAILED

    def mutate(self, error_prefix: str, method: Callable, *args: Any) -> Optional[Any]:
        """Calls a storage mutation; returns None once the workflow has failed."""
        if self.state == ApplyState.FAILED:
            return None
        if self.state != ApplyState.APPLYING:
            message = f"Can't apply changes in {self.state.value} state"
            raise RuntimeError(message)
        try:
            return method(*args)
        except JobsRunningError as e:
            lines = [f"Error with request: {e}", *(f"  {name}" for name in e.names)]
            self.fail("\n".join(lines))
            self.client.commit(False)
        except OneChangeError as e:
            self.fail(f"{error_prefix}: {e}\n{ONE_CHANGE_HINT}")
        except BackendError as e:
            self.fail(f"{error_prefix}: {e}")
        return None

    def mark_changed(self) -> None:
        """Notes that storage holds uncommitted changes."""
        self.changed = True

    def record_affected(self, heading: str, names: Optional[list[str]], empty: str) -> None:
        """Prints the affected-object list of a successful mutation."""
        if names is None:
            return
        if not names:
            print(empty)
            return
        print(heading)
        for name in names:
            print(f"  {name}")
        self.affected.extend(names)
        self.mark_changed()

    def check_default_account(self, names: list[str], account: str) -> tuple[list[str], list[str]]:
        """Splits user names into those associated with the account and the rest.

        The rest goes to the rejected list.
        """
        accepted, rejected = [], []
        for name in names:
            condition = AssociationCondition(users=[name], accounts=[account])
            if self.client.query_associations(condition):
                accepted.append(name)
            else:
                rejected.append(name)
        self.rejected.extend(rejected)
        return accepted, rejected

    def finish(self) -> ApplyState:
        """Asks for confirmation and commits or discards the changes."""
        if self.state in TERMINAL_STATES:
            return self.state
        if not self.changed:
            self.state = ApplyState.DISCARDED
            return self.state

        self.state = ApplyState.AWAITING_CONFIRMATION
        persist = self.context.confirm(COMMIT_QUESTION)
        if not persist:
            print(" Changes Discarded")
        try:
            self.client.commit(persist)
        except BackendError as e:
            self.fail(f"Problem committing changes: {e}")
            return self.state
        self.state = ApplyState.COMMITTED if persist else ApplyState.DISCARDED
        return self.state
