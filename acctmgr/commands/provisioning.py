"""Association provisioning engine.

Given the users, accounts, clusters and partitions requested by "add user",
works out which associations and WCKeys are missing in the accounting
storage and drafts exactly those, together with the users to create.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from acctmgr.backends import logger
from acctmgr.backends import utils as backend_utils
from acctmgr.backends.exceptions import BackendError, PermissionDeniedError
from acctmgr.backends.structures import (
    Account,
    AccountCondition,
    AdminLevel,
    Association,
    AssociationCondition,
    AssociationLimits,
    ClusterCondition,
    User,
    UserCondition,
    WCKey,
    WCKeyCondition,
)
from acctmgr.commands import CommandContext, Diagnostics
from acctmgr.commands.conditions import AssociationConditionBuilder
from acctmgr.commands.records import AssociationRecordBuilder
from acctmgr.commands.tokenizer import KeywordTable, add_names, split_names, tokenize
from acctmgr.common.structures import WCKeyFetchPolicy

ADD_USER_KEYWORDS = KeywordTable(
    [
        ("Names", 1, "users"),
        ("Users", 1),
        ("AdminLevel", 2),
        ("DefaultAccount", 8),
        ("DefaultWCKey", 8),
        ("WCKeys", 1),
    ]
)

# Targets whose directives must name at least one value
VALUED_TARGETS = ("defaultaccount", "defaultwckey", "wckeys")


@dataclass
class ProvisioningRequest:
    """Targets of one "add user" invocation."""

    users: list[str] = field(default_factory=list)
    accounts: list[str] = field(default_factory=list)
    clusters: list[str] = field(default_factory=list)
    partitions: list[str] = field(default_factory=list)
    wckeys: list[str] = field(default_factory=list)
    default_account: Optional[str] = None
    default_wckey: Optional[str] = None
    admin_level: AdminLevel = AdminLevel.NOT_SET
    limits: AssociationLimits = field(default_factory=AssociationLimits)
    limits_set: bool = False


def parse_add_user(
    args: Iterable[str], diagnostics: Diagnostics
) -> Optional[ProvisioningRequest]:
    """Builds provisioning request from "add user" directives.

    Returns None if any directive is wrong.
    """
    request = ProvisioningRequest()
    assoc_condition = AssociationCondition(
        accounts=request.accounts, clusters=request.clusters, partitions=request.partitions
    )
    condition_builder = AssociationConditionBuilder(diagnostics, assoc_condition)
    limits_builder = AssociationRecordBuilder(diagnostics, request.limits)
    errors_before = diagnostics.error_count

    for arg in args:
        clause = tokenize(arg)
        target = "users" if clause.bare else ADD_USER_KEYWORDS.match(clause.keyword)
        if target == "users":
            if not add_names(request.users, clause.value):
                diagnostics.error(f"No user names given in {clause.text}")
        elif target == "adminlevel":
            request.admin_level = AdminLevel.from_string(clause.value)
            if request.admin_level == AdminLevel.NOT_SET:
                diagnostics.error(f"Unknown admin level: {clause.value}")
        elif target in VALUED_TARGETS and not split_names(clause.value):
            diagnostics.error(f"No value given for {clause.keyword}")
        elif target == "defaultaccount":
            if request.default_account:
                diagnostics.error(f"Already listed DefaultAccount {request.default_account}")
                continue
            request.default_account = clause.value
            add_names(request.accounts, clause.value)
        elif target == "defaultwckey":
            if request.default_wckey:
                diagnostics.error(f"Already listed DefaultWCKey {request.default_wckey}")
                continue
            request.default_wckey = clause.value
            add_names(request.wckeys, clause.value)
        elif target == "wckeys":
            add_names(request.wckeys, clause.value)
        elif limits_builder.add_clause(clause):
            request.limits_set = True
        elif not condition_builder.add_clause(clause):
            diagnostics.error(f"Unknown option: {clause.text}")

    if diagnostics.error_count > errors_before:
        return None
    if not request.users:
        diagnostics.error("Need name of user to add.")
        return None
    return request


class AccountValidationCache:
    """Lazily checked existence of accounts and their base associations.

    Every missing account and every missing account base association is
    reported once per invocation.
    """

    def __init__(
        self,
        accounts: list[Account],
        associations: list[Association],
        diagnostics: Diagnostics,
    ) -> None:
        """Inits lookup tables from the fetched storage state."""
        self.diagnostics = diagnostics
        self.known_accounts = {account.name for account in accounts}
        self.association_keys = {association.key for association in associations}
        self.base_keys = {
            (association.account, association.cluster.lower())
            for association in associations
            if not association.user
        }
        self._accounts: dict[str, bool] = {}
        self._bases: dict[tuple[str, str], bool] = {}

    def account_exists(self, account: str) -> bool:
        """Checks that the account is known to storage."""
        if account not in self._accounts:
            exists = account in self.known_accounts
            if not exists:
                self.diagnostics.error(
                    f"This account '{account}' doesn't exist.\n"
                    "        Contact your admin to add this account."
                )
            self._accounts[account] = exists
        return self._accounts[account]

    def base_exists(self, account: str, cluster: str) -> bool:
        """Checks that the account is available on the cluster."""
        key = (account, cluster.lower())
        if key not in self._bases:
            exists = key in self.base_keys
            if not exists:
                self.diagnostics.error(
                    f"This account '{account}' doesn't exist on cluster {cluster}\n"
                    "        Contact your admin to add this account."
                )
            self._bases[key] = exists
        return self._bases[key]

    def association_exists(
        self, user: str, account: str, cluster: str, partition: Optional[str]
    ) -> bool:
        """Checks if the association is already in storage."""
        return (user, account, cluster, partition or None) in self.association_keys


@dataclass
class ProvisioningPlan:
    """Drafts produced by the engine."""

    users: list[User] = field(default_factory=list)
    associations: list[Association] = field(default_factory=list)
    wckeys: list[WCKey] = field(default_factory=list)
    default_account: Optional[str] = None
    default_wckey: Optional[str] = None
    admin_level: AdminLevel = AdminLevel.NOT_SET
    limits: AssociationLimits = field(default_factory=AssociationLimits)
    limits_set: bool = False
    aborted: bool = False

    @property
    def all_associations(self) -> list[Association]:
        """Drafted associations of new and existing users."""
        nested = [item for user in self.users for item in user.associations]
        return nested + self.associations

    @property
    def all_wckeys(self) -> list[WCKey]:
        """Drafted WCKeys of new and existing users."""
        nested = [item for user in self.users for item in user.wckeys]
        return nested + self.wckeys

    @property
    def is_empty(self) -> bool:
        """Nothing to add."""
        return not (self.users or self.associations or self.wckeys)

    def preview(self) -> list[str]:
        """Human-readable description of the drafts."""
        lines = []
        if self.users:
            lines.append(" Adding User(s)")
            lines.extend(f"  {user.name}" for user in self.users)
            lines.append(" Settings =")
            lines.append(f"  Default Account = {self.default_account}")
            if self.default_wckey:
                lines.append(f"  Default WCKey   = {self.default_wckey}")
            if self.admin_level != AdminLevel.NOT_SET:
                lines.append(f"  Admin Level     = {self.admin_level.value}")

        associations = self.all_associations
        if associations:
            lines.append(" Associations =")
            for item in associations:
                line = f"  U = {item.user:<9.9} A = {item.account:<10.10} C = {item.cluster:<10.10}"
                if item.partition:
                    line += f" P = {item.partition:<10.10}"
                lines.append(line)

        wckeys = self.all_wckeys
        if wckeys:
            lines.append(" WCKeys =")
            lines.extend(
                f"  U = {item.user:<9.9} W = {item.name:<10.10} C = {item.cluster:<10.10}"
                for item in wckeys
            )

        if self.limits_set:
            lines.append(" Non Default Settings")
            lines.extend(backend_utils.describe_limits(self.limits))
        return lines


class ProvisioningEngine:
    """Computes missing users, associations and WCKeys for a request."""

    def __init__(self, context: CommandContext) -> None:
        """Inits engine with collaborators of the command."""
        self.client = context.client
        self.diagnostics = context.diagnostics
        self.confirm = context.confirm
        self.resolve_uid = context.resolve_uid
        self.track_wckey = context.configuration.track_wckey
        self.wckey_fetch_policy = context.configuration.wckey_fetch_policy

    def _resolve_clusters(self, requested: list[str]) -> Optional[list[str]]:
        if not requested:
            clusters = [cluster.name for cluster in self.client.query_clusters(None)]
            if not clusters:
                self.diagnostics.error(
                    "Can't add users, no cluster defined yet.\n"
                    " Please contact your administrator."
                )
                return None
            return clusters

        found = {
            cluster.name.lower(): cluster.name
            for cluster in self.client.query_clusters(ClusterCondition(names=requested))
        }
        clusters = []
        for name in requested:
            if name.lower() not in found:
                self.diagnostics.error(
                    f"This cluster '{name}' doesn't exist.\n"
                    "        Contact your admin to add it to accounting."
                )
                continue
            clusters.append(found[name.lower()])
        return clusters or None

    def _fetch_wckeys(self, request: ProvisioningRequest, clusters: list[str]) -> Optional[set]:
        condition = WCKeyCondition(names=request.wckeys, users=request.users, clusters=clusters)
        try:
            return {wckey.key for wckey in self.client.query_wckeys(condition)}
        except BackendError as e:
            if self.wckey_fetch_policy == WCKeyFetchPolicy.STRICT:
                self.diagnostics.error(f"Problem getting WCKeys from database: {e}")
                return None
            logger.warning("Unable to fetch WCKeys: %s", e)
            if isinstance(e, PermissionDeniedError):
                logger.info("If you are a coordinator ignore the previous error")
            return set()

    def plan(self, request: ProvisioningRequest) -> Optional[ProvisioningPlan]:
        """Drafts missing entities; returns None if the request can't proceed.

        Raises:
            BackendError: If storage can't be queried
        """
        existing_users = {
            user.name
            for user in self.client.query_users(
                UserCondition(assoc_condition=AssociationCondition(users=list(request.users)))
            )
        }

        clusters = self._resolve_clusters(request.clusters)
        if clusters is None:
            return None

        accounts: list[Account] = []
        associations: list[Association] = []
        default_account = request.default_account
        if not request.accounts:
            if not request.wckeys:
                self.diagnostics.error("Need name of account to add user to.")
                return None
        else:
            accounts = self.client.query_accounts(AccountCondition(names=request.accounts))
            default_account = default_account or request.accounts[0]
            associations = self.client.query_associations(
                AssociationCondition(users=None, accounts=request.accounts, clusters=clusters)
            )

        track_wckey = self.track_wckey or bool(request.default_wckey)
        default_wckey = request.default_wckey
        existing_wckeys: set = set()
        if track_wckey:
            default_wckey = default_wckey or (request.wckeys[0] if request.wckeys else None)
            fetched = self._fetch_wckeys(request, clusters)
            if fetched is None:
                return None
            existing_wckeys = fetched

        template = AssociationLimits()
        template.apply(request.limits)
        plan = ProvisioningPlan(
            default_account=default_account,
            default_wckey=default_wckey,
            admin_level=request.admin_level,
            limits=template,
            limits_set=request.limits_set,
        )
        cache = AccountValidationCache(accounts, associations, self.diagnostics)
        missing_default_reported = False

        for name in request.users:
            if not name:
                self.diagnostics.error("No blank names are allowed when adding.")
                continue

            draft = None
            if name not in existing_users:
                if not default_account:
                    if not missing_default_reported:
                        self.diagnostics.error("Need a default account for these users to add.")
                        missing_default_reported = True
                    continue
                if not cache.account_exists(default_account):
                    continue
                if self.resolve_uid(name) is None and not self.confirm(
                    f"There is no uid for user '{name}'\nAre you sure you want to continue?"
                ):
                    return ProvisioningPlan(aborted=True)
                draft = User(
                    name=name,
                    admin_level=request.admin_level,
                    default_account=default_account,
                    default_wckey=default_wckey or "",
                )
                plan.users.append(draft)

            new_associations = self._draft_associations(name, request, clusters, cache, template)
            new_wckeys = []
            if track_wckey:
                new_wckeys = [
                    WCKey(user=name, name=wckey, cluster=cluster)
                    for wckey in request.wckeys
                    for cluster in clusters
                    if (name, wckey, cluster) not in existing_wckeys
                ]

            if draft is not None:
                draft.associations.extend(new_associations)
                draft.wckeys.extend(new_wckeys)
            else:
                plan.associations.extend(new_associations)
                plan.wckeys.extend(new_wckeys)

        return plan

    def _draft_associations(
        self,
        user: str,
        request: ProvisioningRequest,
        clusters: list[str],
        cache: AccountValidationCache,
        template: AssociationLimits,
    ) -> list[Association]:
        result = []
        for account in request.accounts:
            if not cache.account_exists(account):
                continue
            for cluster in clusters:
                if not cache.base_exists(account, cluster):
                    continue
                # A partition-qualified request never produces the cluster-wide tuple
                partitions = request.partitions or [None]
                for partition in partitions:
                    if cache.association_exists(user, account, cluster, partition):
                        continue
                    result.append(
                        Association(
                            user=user,
                            account=account,
                            cluster=cluster,
                            partition=partition,
                            parent=account,
                            limits=template.copy(),
                        )
                    )
        return result
