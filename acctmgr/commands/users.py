"""Handlers of the user directives."""

from __future__ import annotations

from typing import Optional

from acctmgr.backends.exceptions import BackendError
from acctmgr.backends.structures import AssociationCondition, UserCondition
from acctmgr.commands import CommandContext, Scope
from acctmgr.commands.conditions import ConditionBuilder, is_separator, parse_conditions
from acctmgr.commands.orchestrator import ApplyOrchestrator, ApplyState
from acctmgr.commands.printing import ReportPrinter, resolve_fields, user_row
from acctmgr.commands.provisioning import ProvisioningEngine, parse_add_user
from acctmgr.commands.records import RecordBuilder
from acctmgr.commands.tokenizer import tokenize

DEFAULT_FORMAT = "User,DefaultAccount,AdminLevel"
DEFAULT_WCKEY_FORMAT = "User,DefaultAccount,DefaultWCKey,AdminLevel"
ASSOCIATION_FORMAT = (
    "Cluster,Account,Partition,Shares,MaxJobs,MaxNodes,MaxCPUs,MaxSubmit,MaxWall,"
    "MaxCPUMins,QOS,DefaultQOS"
)
COORDINATOR_FORMAT = "Coordinators"


def add_user(context: CommandContext, args: list[str]) -> Optional[ApplyState]:
    """Handles "add user"."""
    diagnostics = context.diagnostics
    request = parse_add_user(args, diagnostics)
    if request is None:
        return None

    engine = ProvisioningEngine(context)
    try:
        plan = engine.plan(request)
    except BackendError as e:
        diagnostics.error(f"Problem getting data from database.  Contact your admin.\n {e}")
        return None
    if plan is None or plan.aborted:
        return None

    if plan.is_empty:
        print(" Nothing new added.")
        return None
    if not plan.all_associations and not plan.all_wckeys:
        diagnostics.error("No associations or wckeys created.")
        return None

    for line in plan.preview():
        print(line)

    orchestrator = ApplyOrchestrator(context)
    # Errors reported while drafting only excluded the affected tuples
    orchestrator.validate(strict=False)
    client = context.client
    with orchestrator.applying():
        if plan.users:
            orchestrator.mutate("Problem adding users", client.create_users, plan.users)
        if plan.associations:
            orchestrator.mutate(
                "Problem adding user associations", client.create_associations, plan.associations
            )
        if plan.wckeys:
            orchestrator.mutate("Problem adding user wckeys", client.create_wckeys, plan.wckeys)
        if orchestrator.state == ApplyState.APPLYING:
            orchestrator.mark_changed()
    return orchestrator.finish()


def list_users(context: CommandContext, args: list[str]) -> None:
    """Handles "list user"."""
    diagnostics = context.diagnostics
    configuration = context.configuration
    format_fields: list[str] = []
    condition = UserCondition(with_assocs=configuration.with_associations)
    builder = ConditionBuilder(diagnostics, condition, format_fields)
    scope = parse_conditions(args, builder)
    if diagnostics.failed:
        return

    if not format_fields:
        default_format = DEFAULT_WCKEY_FORMAT if configuration.track_wckey else DEFAULT_FORMAT
        format_fields.extend(default_format.split(","))
        if condition.with_assocs:
            format_fields.extend(ASSOCIATION_FORMAT.split(","))
        if condition.with_coords:
            format_fields.append(COORDINATOR_FORMAT)

    if not condition.with_assocs and scope & Scope.ASSOCIATION:
        question = (
            "You requested options that are only valid when querying with the "
            "withassoc option.\nAre you sure you want to continue?"
        )
        if not context.confirm(question):
            print("Aborted")
            return

    fields = resolve_fields(format_fields, diagnostics)
    if diagnostics.failed:
        return

    try:
        users = context.client.query_users(condition)
    except BackendError as e:
        diagnostics.error(f"Problem with query: {e}")
        return

    printer = ReportPrinter(fields, configuration.parsable, configuration.no_header)
    printer.print_header()
    for user in users:
        if condition.with_assocs:
            for association in user.associations:
                printer.print_row(user_row(user, association))
        else:
            printer.print_row(user_row(user, None))


def parse_modify(args: list[str], conditions: ConditionBuilder, records: RecordBuilder) -> None:
    """Feeds "modify" directives to the builders.

    Directives before any separator and after Where go to the condition,
    directives after Set go to the record.
    """
    builder = conditions
    for arg in args:
        clause = tokenize(arg)
        if is_separator(clause, "where"):
            builder = conditions
        elif is_separator(clause, "set"):
            builder = records
        else:
            builder.add_clause(clause)


def _reset_usage(
    context: CommandContext, condition: UserCondition, orchestrator: ApplyOrchestrator
) -> ApplyState:
    if not condition.assoc_condition.accounts:
        orchestrator.fail("An account must be specified")
        return orchestrator.state
    with orchestrator.applying():
        names = orchestrator.mutate(
            "Error with request",
            context.client.remove_association_usage,
            condition.assoc_condition,
        )
        orchestrator.record_affected(
            " Reset raw usage of associations...", names, " Nothing modified"
        )
    return orchestrator.finish()


def _modify_user_fields(
    context: CommandContext,
    conditions: ConditionBuilder,
    records: RecordBuilder,
    orchestrator: ApplyOrchestrator,
) -> None:
    condition = conditions.condition
    record = records.user_record
    if conditions.scope == Scope.ASSOCIATION:
        orchestrator.fail("There was a problem with your 'where' options.")
        return

    new_default = record.default_account
    if new_default:
        try:
            names = [user.name for user in context.client.query_users(condition)]
            accepted, rejected = orchestrator.check_default_account(names, new_default)
        except BackendError as e:
            orchestrator.fail(f"Error with request: {e}")
            return
        if rejected:
            lines = [
                "Can't modify because these users aren't associated with new "
                f"default account '{new_default}'...",
                *(f"  {name}" for name in rejected),
            ]
            context.diagnostics.error("\n".join(lines))
        if not accepted:
            if not rejected:
                print(" Nothing modified")
            return
        condition = UserCondition(assoc_condition=AssociationCondition(users=accepted))

    names = orchestrator.mutate(
        "Error with request", context.client.modify_users, condition, record
    )
    orchestrator.record_affected(" Modified users...", names, " Nothing modified")


def _modify_associations(
    context: CommandContext,
    conditions: ConditionBuilder,
    records: RecordBuilder,
    orchestrator: ApplyOrchestrator,
) -> None:
    condition = conditions.condition
    if conditions.scope == Scope.USER and not condition.names:
        orchestrator.fail("There was a problem with your 'where' options.")
        return
    names = orchestrator.mutate(
        "Error with request",
        context.client.modify_associations,
        condition.assoc_condition,
        records.assoc_record,
    )
    orchestrator.record_affected(" Modified account associations...", names, " Nothing modified")


def modify_users(context: CommandContext, args: list[str]) -> Optional[ApplyState]:
    """Handles "modify user"."""
    diagnostics = context.diagnostics
    conditions = ConditionBuilder(diagnostics)
    records = RecordBuilder(diagnostics)
    parse_modify(args, conditions, records)

    orchestrator = ApplyOrchestrator(context)
    if not orchestrator.validate(records.scope):
        return orchestrator.state

    condition = conditions.condition
    if not conditions.scope and not context.confirm(
        "You didn't set any conditions with 'WHERE'.\nAre you sure you want to continue?"
    ):
        print("Aborted")
        return None

    if records.assoc_record.raw_usage is not None:
        return _reset_usage(context, condition, orchestrator)

    if (
        records.scope & Scope.USER
        and conditions.scope != Scope.ASSOCIATION
        and condition.assoc_condition.accounts
        and context.confirm(
            " You specified Accounts in your request.  Did you mean DefaultAccounts?"
        )
    ):
        condition.default_accounts.extend(condition.assoc_condition.accounts)
        condition.assoc_condition.accounts = []

    with orchestrator.applying():
        if records.scope & Scope.USER:
            _modify_user_fields(context, conditions, records, orchestrator)
        if records.scope & Scope.ASSOCIATION and orchestrator.state != ApplyState.FAILED:
            _modify_associations(context, conditions, records, orchestrator)
    return orchestrator.finish()


def delete_users(context: CommandContext, args: list[str]) -> Optional[ApplyState]:
    """Handles "delete user"."""
    diagnostics = context.diagnostics
    builder = ConditionBuilder(diagnostics)
    scope = parse_conditions(args, builder)
    if not scope:
        diagnostics.error("No conditions given to remove, not executing.")
        return None

    orchestrator = ApplyOrchestrator(context)
    if not orchestrator.validate():
        return orchestrator.state

    condition = builder.condition
    client = context.client
    with orchestrator.applying():
        if scope == Scope.USER:
            names = orchestrator.mutate("Error with request", client.remove_users, condition)
            orchestrator.record_affected(" Deleting users...", names, " Nothing deleted")
        else:
            names = orchestrator.mutate(
                "Error with request", client.remove_associations, condition.assoc_condition
            )
            orchestrator.record_affected(
                " Deleting user associations...", names, " Nothing deleted"
            )
    return orchestrator.finish()
