"""Client for the accounting database stored in a YAML file."""

from __future__ import annotations

import copy
import dataclasses
import datetime
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import yaml

from acctmgr.backends import base, logger
from acctmgr.backends.exceptions import (
    BackendError,
    JobsRunningError,
    OneChangeError,
)
from acctmgr.backends.structures import (
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


@dataclass
class Database:
    """In-memory image of the database file."""

    clusters: list[Cluster] = field(default_factory=list)
    accounts: list[Account] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    associations: list[Association] = field(default_factory=list)
    wckeys: list[WCKey] = field(default_factory=list)
    mod_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> Database:
        """Builds the database from a parsed YAML document."""
        associations = []
        for item in data.get("associations") or []:
            item = dict(item)
            limits = AssociationLimits(**(item.pop("limits", None) or {}))
            associations.append(Association(limits=limits, **item))
        users = []
        for item in data.get("users") or []:
            item = dict(item)
            admin_level = AdminLevel(item.pop("admin_level", AdminLevel.NONE.value))
            users.append(User(admin_level=admin_level, **item))
        return cls(
            clusters=[Cluster(**item) for item in data.get("clusters") or []],
            accounts=[Account(**item) for item in data.get("accounts") or []],
            users=users,
            associations=associations,
            wckeys=[WCKey(**item) for item in data.get("wckeys") or []],
            mod_time=data.get("mod_time"),
        )

    def to_dict(self) -> dict:
        """Converts the database into a YAML-friendly document."""
        users = []
        for user in self.users:
            item = dataclasses.asdict(user)
            item["admin_level"] = user.admin_level.value
            # Associations and WCKeys are stored in their own sections
            item.pop("associations")
            item.pop("wckeys")
            users.append(item)
        return {
            "mod_time": self.mod_time,
            "clusters": [dataclasses.asdict(item) for item in self.clusters],
            "accounts": [dataclasses.asdict(item) for item in self.accounts],
            "users": users,
            "associations": [dataclasses.asdict(item) for item in self.associations],
            "wckeys": [dataclasses.asdict(item) for item in self.wckeys],
        }


def association_matches(association: Association, condition: AssociationCondition) -> bool:
    """Checks if the association satisfies the condition."""
    if association.deleted and not condition.with_deleted:
        return False
    if condition.users is not None:
        if not association.user:
            return False
        if condition.users and association.user not in condition.users:
            return False
    if condition.accounts and association.account not in condition.accounts:
        return False
    if condition.clusters and association.cluster.lower() not in {
        name.lower() for name in condition.clusters
    }:
        return False
    if condition.partitions and association.partition not in condition.partitions:
        return False
    return not condition.qos or any(qos in association.limits.qos for qos in condition.qos)


def has_association_filters(condition: AssociationCondition) -> bool:
    """Checks if the condition restricts anything besides user names."""
    return bool(condition.accounts or condition.clusters or condition.partitions or condition.qos)


class FileClient(base.BaseClient):
    """Accounting storage kept in a YAML file.

    All changes go to a working copy; commit(True) writes it to the file,
    commit(False) drops it.
    """

    def __init__(self, database_path: Optional[str] = None) -> None:
        """Loads the database file; a missing file means an empty database."""
        self.database_path = Path(database_path) if database_path else None
        self._committed = self._load()
        self._working = copy.deepcopy(self._committed)

    def _load(self) -> Database:
        if self.database_path is None or not self.database_path.exists():
            logger.info("Starting with an empty accounting database")
            return Database()
        logger.debug("Loading accounting database from %s", self.database_path)
        try:
            with self.database_path.open(encoding="UTF-8") as stream:
                data = yaml.safe_load(stream) or {}
            return Database.from_dict(data)
        except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
            message = f"Unable to read database file {self.database_path}: {e}"
            raise BackendError(message) from e

    def _save(self) -> None:
        if self.database_path is None:
            return
        temp_path = self.database_path.with_suffix(self.database_path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="UTF-8") as stream:
                yaml.safe_dump(self._committed.to_dict(), stream, sort_keys=False)
            os.replace(temp_path, self.database_path)
        except OSError as e:
            message = f"Unable to write database file {self.database_path}: {e}"
            raise BackendError(message) from e

    @property
    def mod_time(self) -> Optional[str]:
        """Time of the last committed change."""
        return self._committed.mod_time

    def add_cluster(self, name: str) -> Cluster:
        """Registers a cluster together with the base association of the root account."""
        cluster = self._find_cluster(name)
        if cluster is not None:
            return cluster
        cluster = Cluster(name=name)
        self._working.clusters.append(cluster)
        if self._find_account("root") is None:
            self._working.accounts.append(
                Account(name="root", description="default root account", organization="root")
            )
        self._append_association(Association(user="", account="root", cluster=name))
        return cluster

    def add_account(
        self,
        name: str,
        clusters: Optional[Iterable[str]] = None,
        parent: str = "root",
        description: str = "",
        organization: str = "",
    ) -> Account:
        """Registers an account and its base associations on the clusters."""
        account = self._find_account(name)
        if account is None:
            account = Account(
                name=name,
                description=description or name,
                organization=organization or parent,
                parent=parent,
            )
            self._working.accounts.append(account)
        cluster_names = (
            list(clusters) if clusters else [item.name for item in self._working.clusters]
        )
        for cluster_name in cluster_names:
            cluster = self._find_cluster(cluster_name)
            if cluster is None:
                message = f"Cluster {cluster_name} doesn't exist"
                raise BackendError(message)
            base_assoc = Association(user="", account=name, cluster=cluster.name, parent=parent)
            if self._find_association(base_assoc.key) is None:
                self._append_association(base_assoc)
        return account

    def _find_cluster(self, name: str) -> Optional[Cluster]:
        for cluster in self._working.clusters:
            if cluster.name.lower() == name.lower():
                return cluster
        return None

    def _find_account(self, name: str) -> Optional[Account]:
        for account in self._working.accounts:
            if account.name == name:
                return account
        return None

    def _find_user(self, name: str, with_deleted: bool = False) -> Optional[User]:
        for user in self._working.users:
            if user.name == name and (with_deleted or not user.deleted):
                return user
        return None

    def _find_association(self, key: tuple, with_deleted: bool = False) -> Optional[Association]:
        for association in self._working.associations:
            if association.key == key and (with_deleted or not association.deleted):
                return association
        return None

    def _user_associations(self, user: User, condition: AssociationCondition) -> list[Association]:
        user_condition = dataclasses.replace(condition, users=[user.name])
        return [
            association
            for association in self._working.associations
            if association_matches(association, user_condition)
        ]

    def _matching_users(self, condition: UserCondition) -> list[User]:
        assoc_condition = condition.assoc_condition
        result = []
        for user in self._working.users:
            if user.deleted and not condition.with_deleted:
                continue
            if condition.names and user.name not in condition.names:
                continue
            if (
                condition.admin_level != AdminLevel.NOT_SET
                and user.admin_level != condition.admin_level
            ):
                continue
            default_accounts = condition.default_accounts
            if default_accounts and user.default_account not in default_accounts:
                continue
            if condition.default_wckeys and user.default_wckey not in condition.default_wckeys:
                continue
            if has_association_filters(assoc_condition) and not self._user_associations(
                user, assoc_condition
            ):
                continue
            result.append(user)
        return result

    def _matching_associations(self, condition: AssociationCondition) -> list[Association]:
        return [
            association
            for association in self._working.associations
            if association_matches(association, condition)
        ]

    def query_users(self, condition: UserCondition) -> list[User]:
        """Returns copies of the users matching the condition."""
        result = []
        for user in self._matching_users(condition):
            user_copy = copy.deepcopy(user)
            if condition.with_assocs:
                user_copy.associations = copy.deepcopy(
                    self._user_associations(user, condition.assoc_condition)
                )
            if not condition.with_coords:
                user_copy.coordinator_accounts = []
            result.append(user_copy)
        return result

    def query_accounts(self, condition: AccountCondition) -> list[Account]:
        """Returns copies of the accounts matching the condition."""
        return [
            copy.deepcopy(account)
            for account in self._working.accounts
            if not condition.names or account.name in condition.names
        ]

    def query_clusters(self, condition: Optional[ClusterCondition] = None) -> list[Cluster]:
        """Returns copies of the clusters, filtered by name if requested."""
        names = {name.lower() for name in condition.names} if condition else set()
        return [
            copy.deepcopy(cluster)
            for cluster in self._working.clusters
            if not names or cluster.name.lower() in names
        ]

    def query_associations(self, condition: AssociationCondition) -> list[Association]:
        """Returns copies of the associations matching the condition."""
        return copy.deepcopy(self._matching_associations(condition))

    def query_wckeys(self, condition: WCKeyCondition) -> list[WCKey]:
        """Returns copies of the WCKeys matching the condition."""
        clusters = {name.lower() for name in condition.clusters}
        return [
            copy.deepcopy(wckey)
            for wckey in self._working.wckeys
            if (condition.with_deleted or not wckey.deleted)
            and (not condition.names or wckey.name in condition.names)
            and (not condition.users or wckey.user in condition.users)
            and (not clusters or wckey.cluster.lower() in clusters)
        ]

    def _next_association_id(self) -> int:
        ids = [item.id for item in self._working.associations if item.id is not None]
        return max(ids, default=0) + 1

    def _append_association(self, association: Association) -> None:
        association.id = self._next_association_id()
        self._working.associations.append(association)

    def _add_association(self, association: Association) -> None:
        base_key = ("", association.account, association.cluster, None)
        base_association = self._find_association(base_key)
        if base_association is None:
            message = (
                f"Account {association.account} doesn't exist on cluster {association.cluster}"
            )
            raise BackendError(message)
        if self._find_user(association.user) is None:
            message = f"User {association.user} doesn't exist"
            raise BackendError(message)

        existing = self._find_association(association.key, with_deleted=True)
        if existing is not None and not existing.deleted:
            logger.debug("Association %s already exists", association.describe())
            return

        new_association = copy.deepcopy(association)
        new_association.parent = association.account
        new_association.deleted = False
        if existing is not None:
            new_association.id = existing.id
            self._working.associations.remove(existing)
            self._working.associations.append(new_association)
        else:
            self._append_association(new_association)

    def _add_wckey(self, wckey: WCKey) -> None:
        if self._find_user(wckey.user) is None:
            message = f"User {wckey.user} doesn't exist"
            raise BackendError(message)
        if self._find_cluster(wckey.cluster) is None:
            message = f"Cluster {wckey.cluster} doesn't exist"
            raise BackendError(message)
        for existing in self._working.wckeys:
            if existing.key == wckey.key:
                existing.deleted = False
                return
        self._working.wckeys.append(copy.deepcopy(wckey))

    def create_users(self, users: list[User]) -> None:
        """Adds users with their nested associations and WCKeys."""
        for user in users:
            if not user.name:
                message = "Blank user names are not allowed"
                raise BackendError(message)
            if self._find_user(user.name) is not None:
                message = f"User {user.name} already exists"
                raise BackendError(message)
            previous = self._find_user(user.name, with_deleted=True)
            if previous is not None:
                self._working.users.remove(previous)

            stored_user = copy.deepcopy(user)
            stored_user.associations = []
            stored_user.wckeys = []
            if stored_user.admin_level == AdminLevel.NOT_SET:
                stored_user.admin_level = AdminLevel.NONE
            self._working.users.append(stored_user)
            logger.info("Adding user %s", user.name)

            for association in user.associations:
                self._add_association(association)
            for wckey in user.wckeys:
                self._add_wckey(wckey)

    def create_associations(self, associations: list[Association]) -> None:
        """Adds associations of existing users."""
        for association in associations:
            self._add_association(association)

    def create_wckeys(self, wckeys: list[WCKey]) -> None:
        """Adds WCKeys of existing users."""
        for wckey in wckeys:
            self._add_wckey(wckey)

    def modify_users(self, condition: UserCondition, record: UserRecord) -> list[str]:
        """Applies the record to the matching users."""
        users = self._matching_users(condition)
        if record.new_name:
            if len(users) > 1:
                message = "Only one user can be renamed at a time"
                raise OneChangeError(message)
            if self._find_user(record.new_name) is not None:
                message = f"User {record.new_name} already exists"
                raise BackendError(message)

        names = []
        for user in users:
            names.append(user.name)
            if record.admin_level != AdminLevel.NOT_SET:
                user.admin_level = record.admin_level
            if record.default_account is not None:
                user.default_account = record.default_account
            if record.default_wckey is not None:
                user.default_wckey = record.default_wckey
            if record.new_name:
                self._rename_user(user, record.new_name)
        return names

    def _rename_user(self, user: User, new_name: str) -> None:
        logger.info("Renaming user %s to %s", user.name, new_name)
        for association in self._working.associations:
            if association.user == user.name:
                association.user = new_name
        for wckey in self._working.wckeys:
            if wckey.user == user.name:
                wckey.user = new_name
        user.name = new_name

    def modify_associations(
        self, condition: AssociationCondition, record: AssociationRecord
    ) -> list[str]:
        """Applies the record to the matching associations."""
        associations = self._matching_associations(condition)
        for association in associations:
            association.limits.apply(record.limits)
            if record.raw_usage is not None:
                association.raw_usage = record.raw_usage
        return [association.describe() for association in associations]

    def _check_running_jobs(self, associations: list[Association]) -> None:
        busy = [item.describe() for item in associations if item.running_jobs > 0]
        if busy:
            message = "Job(s) running, cancel job(s) before remove"
            raise JobsRunningError(message, busy)

    def remove_users(self, condition: UserCondition) -> list[str]:
        """Marks the matching users and everything they own as deleted."""
        users = self._matching_users(condition)
        owned = [
            association
            for association in self._working.associations
            if not association.deleted and association.user in {user.name for user in users}
        ]
        self._check_running_jobs(owned)
        for association in owned:
            association.deleted = True
        for wckey in self._working.wckeys:
            if wckey.user in {user.name for user in users}:
                wckey.deleted = True
        for user in users:
            user.deleted = True
            user.coordinator_accounts = []
        return [user.name for user in users]

    def remove_associations(self, condition: AssociationCondition) -> list[str]:
        """Marks the matching associations as deleted."""
        associations = self._matching_associations(condition)
        self._check_running_jobs(associations)
        for association in associations:
            association.deleted = True
        return [association.describe() for association in associations]

    def remove_association_usage(self, condition: AssociationCondition) -> list[str]:
        """Resets raw usage of the matching associations."""
        associations = self._matching_associations(condition)
        for association in associations:
            association.raw_usage = 0.0
        return [association.describe() for association in associations]

    def _users_by_name(self, condition: UserCondition) -> list[User]:
        return [
            user
            for user in self._working.users
            if not user.deleted and (not condition.names or user.name in condition.names)
        ]

    def add_coordinators(self, accounts: list[str], condition: UserCondition) -> None:
        """Adds the accounts to the coordinator lists of the users."""
        for account in accounts:
            if self._find_account(account) is None:
                message = f"Account {account} doesn't exist"
                raise BackendError(message)
        users = self._users_by_name(condition)
        if not users:
            message = "No users matched the request"
            raise BackendError(message)
        for user in users:
            for account in accounts:
                if account not in user.coordinator_accounts:
                    user.coordinator_accounts.append(account)

    def remove_coordinators(
        self, accounts: Optional[list[str]], condition: UserCondition
    ) -> list[str]:
        """Removes the accounts (or all accounts) from the coordinator lists."""
        removed = []
        for user in self._users_by_name(condition):
            for account in list(user.coordinator_accounts):
                if accounts and account not in accounts:
                    continue
                user.coordinator_accounts.remove(account)
                removed.append(f"U = {user.name:<9} A = {account:<10}")
        return removed

    def commit(self, persist: bool) -> None:
        """Writes the working copy to the file or drops it."""
        if persist:
            self._working.mod_time = datetime.datetime.now().isoformat(timespec="seconds")
            self._committed = copy.deepcopy(self._working)
            self._save()
            logger.info("Changes committed")
        else:
            self._working = copy.deepcopy(self._committed)
            logger.info("Changes rolled back")
