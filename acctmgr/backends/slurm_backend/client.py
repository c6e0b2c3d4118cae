"""CLI-client for SLURM accounting."""

from __future__ import annotations

from typing import Optional

from acctmgr.backends import base, logger
from acctmgr.backends import utils as backend_utils
from acctmgr.backends.exceptions import BackendError, PermissionDeniedError
from acctmgr.backends.slurm_backend import SACCTMGR_COMMAND
from acctmgr.backends.slurm_backend.parser import (
    ACCOUNT_FORMAT,
    ASSOCIATION_FORMAT,
    CLUSTER_FORMAT,
    USER_FORMAT,
    WCKEY_FORMAT,
    SlurmAssociationLine,
    SlurmUserLine,
    parse_account,
    parse_cluster,
    parse_wckey,
)
from acctmgr.backends.structures import (
    INFINITE,
    Account,
    AccountCondition,
    AdminLevel,
    Association,
    AssociationCondition,
    AssociationLimits,
    AssociationRecord,
    Cluster,
    ClusterCondition,
    User,
    UserCondition,
    UserRecord,
    WCKey,
    WCKeyCondition,
)

PERMISSION_MARKERS = ("permission denied", "privilege", "access denied")


def association_where(condition: AssociationCondition) -> list[str]:
    """Converts association condition to sacctmgr where-arguments."""
    args = []
    if condition.users:
        args.append(f"users={','.join(condition.users)}")
    if condition.accounts:
        args.append(f"accounts={','.join(condition.accounts)}")
    if condition.clusters:
        args.append(f"clusters={','.join(condition.clusters)}")
    if condition.partitions:
        args.append(f"partitions={','.join(condition.partitions)}")
    if condition.qos:
        args.append(f"qos={','.join(condition.qos)}")
    return args


def user_where(condition: UserCondition) -> list[str]:
    """Converts user condition to sacctmgr where-arguments."""
    args = association_where(condition.assoc_condition)
    if condition.admin_level != AdminLevel.NOT_SET:
        args.append(f"adminlevel={condition.admin_level.value}")
    if condition.default_accounts:
        args.append(f"defaultaccount={','.join(condition.default_accounts)}")
    if condition.default_wckeys:
        args.append(f"defaultwckey={','.join(condition.default_wckeys)}")
    return args


def limits_args(limits: AssociationLimits) -> list[str]:
    """Converts limits to sacctmgr set-arguments."""
    args = []
    for name, label in backend_utils.LIMIT_LABELS.items():
        value = getattr(limits, name)
        if value is None:
            continue
        if value != INFINITE and name in backend_utils.DURATION_FIELDS:
            value = backend_utils.format_duration(value)
        args.append(f"{label}={value}")

    plain = [item for item in limits.qos if item[:1] not in ("+", "-")]
    added = [item[1:] for item in limits.qos if item.startswith("+")]
    removed = [item[1:] for item in limits.qos if item.startswith("-")]
    if plain:
        args.append(f"qos={','.join(plain)}")
    if added:
        args.append(f"qos+={','.join(added)}")
    if removed:
        args.append(f"qos-={','.join(removed)}")
    if limits.default_qos is not None:
        args.append(f"defaultqos={limits.default_qos or INFINITE}")
    return args


class SlurmClient(base.BaseClient):
    """This class implements Python client for SLURM accounting.

    Queries run right away, mutations are queued until commit.
    See also: https://slurm.schedmd.com/sacctmgr.html
    """

    def __init__(self, container_name: Optional[str] = None) -> None:
        """Inits command prefix and the queue of pending commands."""
        self.command_prefix = ["docker", "exec", container_name] if container_name else []
        self.pending_commands: list[list[str]] = []

    def _execute_command(
        self,
        command: list[str],
        immediate: bool = False,
        silent: bool = False,
    ) -> str:
        """Constructs and executes a command with the given parameters."""
        account_command = [*self.command_prefix, SACCTMGR_COMMAND, "--parsable2", "--noheader"]
        if immediate:
            account_command.append("--immediate")
        account_command.extend(command)
        try:
            return self.execute_command(account_command, silent=silent)
        except BackendError as e:
            if any(marker in str(e).lower() for marker in PERMISSION_MARKERS):
                raise PermissionDeniedError(str(e)) from e
            raise

    def _query(self, entity: str, format_: str, options: list[str], where: list[str]) -> list[str]:
        command = ["list", entity, f"format={format_}", *options]
        if where:
            command.extend(["where", *where])
        output = self._execute_command(command)
        return [line for line in output.splitlines() if line.strip()]

    def _stage(self, command: list[str]) -> None:
        logger.debug("Queueing command: %s", " ".join(command))
        self.pending_commands.append(command)

    def query_users(self, condition: UserCondition) -> list[User]:
        """Returns users matching the condition."""
        options = []
        if condition.with_coords:
            options.append("withcoord")
        if condition.with_deleted:
            options.append("withdeleted")
        lines = self._query("user", USER_FORMAT, options, user_where(condition))
        users = [SlurmUserLine(line).to_user() for line in lines]
        if condition.with_assocs and users:
            assoc_condition = AssociationCondition(
                users=[user.name for user in users],
                accounts=condition.assoc_condition.accounts,
                clusters=condition.assoc_condition.clusters,
                partitions=condition.assoc_condition.partitions,
                qos=condition.assoc_condition.qos,
                with_deleted=condition.with_deleted,
            )
            associations = self.query_associations(assoc_condition)
            for user in users:
                user.associations = [item for item in associations if item.user == user.name]
        return users

    def query_accounts(self, condition: AccountCondition) -> list[Account]:
        """Returns accounts matching the condition."""
        where = [f"names={','.join(condition.names)}"] if condition.names else []
        options = ["withdeleted"] if condition.with_deleted else []
        lines = self._query("account", ACCOUNT_FORMAT, options, where)
        return [parse_account(line) for line in lines]

    def query_clusters(self, condition: Optional[ClusterCondition] = None) -> list[Cluster]:
        """Returns clusters, filtered by name if requested."""
        where = []
        if condition is not None and condition.names:
            where = [f"names={','.join(condition.names)}"]
        lines = self._query("cluster", CLUSTER_FORMAT, [], where)
        return [parse_cluster(line) for line in lines]

    def query_associations(self, condition: AssociationCondition) -> list[Association]:
        """Returns associations matching the condition."""
        options = []
        if condition.with_deleted:
            options.append("withdeleted")
        if condition.with_raw_qos:
            options.append("withrawqoslevel")
        if condition.without_parent_limits:
            options.append("wopl")
        lines = self._query(
            "association", ASSOCIATION_FORMAT, options, association_where(condition)
        )
        associations = [SlurmAssociationLine(line).to_association() for line in lines]
        if condition.users is not None:
            associations = [item for item in associations if item.user]
        return associations

    def query_wckeys(self, condition: WCKeyCondition) -> list[WCKey]:
        """Returns WCKeys matching the condition."""
        where = []
        if condition.names:
            where.append(f"names={','.join(condition.names)}")
        if condition.users:
            where.append(f"users={','.join(condition.users)}")
        if condition.clusters:
            where.append(f"clusters={','.join(condition.clusters)}")
        options = ["withdeleted"] if condition.with_deleted else []
        lines = self._query("wckey", WCKEY_FORMAT, options, where)
        return [parse_wckey(line) for line in lines]

    def _association_command(self, association: Association) -> list[str]:
        command = [
            "add",
            "user",
            association.user,
            f"account={association.account}",
            f"cluster={association.cluster}",
        ]
        if association.partition:
            command.append(f"partition={association.partition}")
        command.extend(limits_args(association.limits))
        return command

    def _wckey_command(self, wckey: WCKey) -> list[str]:
        return ["add", "user", wckey.user, f"wckeys={wckey.name}", f"cluster={wckey.cluster}"]

    def create_users(self, users: list[User]) -> None:
        """Queues creation of the users, their associations and WCKeys."""
        for user in users:
            settings = [f"defaultaccount={user.default_account}"]
            if user.default_wckey:
                settings.append(f"defaultwckey={user.default_wckey}")
            if user.admin_level != AdminLevel.NOT_SET:
                settings.append(f"adminlevel={user.admin_level.value}")
            if not user.associations:
                self._stage(["add", "user", user.name, *settings])
            for association in user.associations:
                self._stage([*self._association_command(association), *settings])
            for wckey in user.wckeys:
                self._stage(self._wckey_command(wckey))

    def create_associations(self, associations: list[Association]) -> None:
        """Queues creation of the associations."""
        for association in associations:
            self._stage(self._association_command(association))

    def create_wckeys(self, wckeys: list[WCKey]) -> None:
        """Queues creation of the WCKeys."""
        for wckey in wckeys:
            self._stage(self._wckey_command(wckey))

    def modify_users(self, condition: UserCondition, record: UserRecord) -> list[str]:
        """Queues user modification, returns names of the matched users."""
        settings = []
        if record.admin_level != AdminLevel.NOT_SET:
            settings.append(f"adminlevel={record.admin_level.value}")
        if record.default_account is not None:
            settings.append(f"defaultaccount={record.default_account}")
        if record.default_wckey is not None:
            settings.append(f"defaultwckey={record.default_wckey}")
        if record.new_name:
            settings.append(f"newname={record.new_name}")
        names = [user.name for user in self.query_users(condition)]
        if names and settings:
            self._stage(["modify", "user", "where", *user_where(condition), "set", *settings])
        return names

    def modify_associations(
        self, condition: AssociationCondition, record: AssociationRecord
    ) -> list[str]:
        """Queues association modification, returns descriptions of the matched ones."""
        settings = limits_args(record.limits)
        if record.raw_usage is not None:
            settings.append(f"rawusage={int(record.raw_usage)}")
        associations = self.query_associations(condition)
        if associations and settings:
            where = association_where(condition)
            self._stage(["modify", "user", "where", *where, "set", *settings])
        return [item.describe() for item in associations]

    def remove_users(self, condition: UserCondition) -> list[str]:
        """Queues user removal."""
        names = [user.name for user in self.query_users(condition)]
        if names:
            self._stage(["remove", "user", "where", *user_where(condition)])
        return names

    def remove_associations(self, condition: AssociationCondition) -> list[str]:
        """Queues removal of the associations."""
        associations = self.query_associations(condition)
        if associations:
            self._stage(["remove", "user", "where", *association_where(condition)])
        return [item.describe() for item in associations]

    def remove_association_usage(self, condition: AssociationCondition) -> list[str]:
        """Queues reset of the raw usage."""
        record = AssociationRecord(raw_usage=0.0)
        return self.modify_associations(condition, record)

    def add_coordinators(self, accounts: list[str], condition: UserCondition) -> None:
        """Queues coordinator creation."""
        self._stage(
            [
                "add",
                "coordinator",
                f"accounts={','.join(accounts)}",
                f"names={','.join(condition.names)}",
            ]
        )

    def remove_coordinators(
        self, accounts: Optional[list[str]], condition: UserCondition
    ) -> list[str]:
        """Queues coordinator removal, returns the revoked user/account pairs."""
        lookup = UserCondition(
            assoc_condition=AssociationCondition(users=list(condition.names)), with_coords=True
        )
        removed = []
        for user in self.query_users(lookup):
            for account in user.coordinator_accounts:
                if accounts and account not in accounts:
                    continue
                removed.append(f"U = {user.name:<9} A = {account:<10}")
        if removed:
            command = ["remove", "coordinator"]
            if accounts:
                command.append(f"accounts={','.join(accounts)}")
            if condition.names:
                command.append(f"names={','.join(condition.names)}")
            self._stage(command)
        return removed

    def commit(self, persist: bool) -> None:
        """Runs the queued commands or drops them."""
        commands, self.pending_commands = self.pending_commands, []
        if not persist:
            logger.info("Dropping %s pending command(s)", len(commands))
            return
        for command in commands:
            self._execute_command(command, immediate=True)
