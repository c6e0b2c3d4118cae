"""Granting and revoking of coordinator privilege."""

from __future__ import annotations

from typing import Optional

from acctmgr.backends.base import BaseClient
from acctmgr.backends.exceptions import BackendError
from acctmgr.backends.structures import (
    AccountCondition,
    AssociationCondition,
    UserCondition,
)
from acctmgr.commands import CommandContext, Diagnostics
from acctmgr.commands.conditions import ConditionBuilder, parse_conditions
from acctmgr.commands.orchestrator import ApplyOrchestrator, ApplyState


def check_coordinator_request(
    client: BaseClient, condition: UserCondition, diagnostics: Diagnostics, check: bool
) -> bool:
    """Verifies that every user and account named in the condition exists.

    With check=True both name lists must be given. All unknown names are
    reported, not only the first one.
    """
    users = condition.names
    accounts = condition.assoc_condition.accounts
    if check and not users:
        diagnostics.error("You need to specify a user list here.")
        return False
    if check and not accounts:
        diagnostics.error("You need to specify a account list here.")
        return False

    result = True
    if accounts:
        try:
            found = {item.name for item in client.query_accounts(AccountCondition(names=accounts))}
        except BackendError as e:
            diagnostics.error(f"Problem getting accounts from database.  Contact your admin.\n {e}")
            return False
        for account in accounts:
            if account not in found:
                diagnostics.error(f"You specified a non-existent account '{account}'.")
                result = False

    if users:
        lookup = UserCondition(assoc_condition=AssociationCondition(users=list(users)))
        try:
            found = {item.name for item in client.query_users(lookup)}
        except BackendError as e:
            diagnostics.error(f"Problem getting users from database.  Contact your admin.\n {e}")
            return False
        for user in users:
            if user not in found:
                diagnostics.error(f"You specified a non-existent user '{user}'.")
                result = False
    return result


def _print_names(heading: str, names: list[str]) -> None:
    print(heading)
    for name in names:
        print(f"  {name}")


def add_coordinator(context: CommandContext, args: list[str]) -> Optional[ApplyState]:
    """Handles "add coordinator"."""
    diagnostics = context.diagnostics
    builder = ConditionBuilder(diagnostics)
    scope = parse_conditions(args, builder)
    if diagnostics.failed:
        return None
    if not scope:
        diagnostics.error("You need to specify conditions to add the coordinator.")
        return None

    condition = builder.condition
    if not check_coordinator_request(context.client, condition, diagnostics, check=True):
        return None

    accounts = condition.assoc_condition.accounts
    _print_names(" Adding Coordinator User(s)", condition.names)
    _print_names(" To Account(s) and all sub-accounts", accounts)

    orchestrator = ApplyOrchestrator(context)
    if not orchestrator.validate():
        return orchestrator.state
    with orchestrator.applying():
        orchestrator.mutate(
            "Problem adding coordinator", context.client.add_coordinators, accounts, condition
        )
        if orchestrator.state == ApplyState.APPLYING:
            orchestrator.mark_changed()
    return orchestrator.finish()


def delete_coordinator(context: CommandContext, args: list[str]) -> Optional[ApplyState]:
    """Handles "delete coordinator"."""
    diagnostics = context.diagnostics
    builder = ConditionBuilder(diagnostics)
    scope = parse_conditions(args, builder)
    if diagnostics.failed:
        return None

    condition = builder.condition
    users = condition.names
    accounts = condition.assoc_condition.accounts
    if not scope or not (users or accounts):
        diagnostics.error("You need to specify a user list or account list here.")
        return None
    if not check_coordinator_request(context.client, condition, diagnostics, check=False):
        return None

    if users:
        _print_names(" Removing Coordinators with user name", users)
        if accounts:
            _print_names(" From Account(s)", accounts)
        else:
            print(" From all accounts")
    else:
        _print_names(" Removing all users from Accounts", accounts)

    orchestrator = ApplyOrchestrator(context)
    if not orchestrator.validate():
        return orchestrator.state
    with orchestrator.applying():
        removed = orchestrator.mutate(
            "Error with request",
            context.client.remove_coordinators,
            accounts or None,
            condition,
        )
        orchestrator.record_affected(
            " Removed Coordinators (sub accounts not listed)...", removed, " Nothing removed"
        )
    return orchestrator.finish()
