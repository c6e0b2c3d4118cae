"""Generic client class."""

import abc
import subprocess
from typing import Optional

from acctmgr.backends import logger
from acctmgr.backends.exceptions import (
    BackendError,
)
from acctmgr.backends.structures import (
    Account,
    AccountCondition,
    Association,
    AssociationCondition,
    AssociationRecord,
    Cluster,
    ClusterCondition,
    User,
    UserCondition,
    UserRecord,
    WCKey,
    WCKeyCondition,
)


class BaseClient:
    """Generic client for the accounting storage.

    Queries return an empty list when nothing matches and raise BackendError
    on hard failures. Mutations stay pending until commit() is called.
    """

    def execute_command(self, command: list[str], silent: bool = False) -> str:
        """Execute command on backend."""
        try:
            logger.debug("Executing command: %s", " ".join(command))
            return subprocess.check_output(command, stderr=subprocess.STDOUT, encoding="utf-8")
        except subprocess.CalledProcessError as e:
            if not silent:
                logger.exception('Failed to execute command "%s".', command)
            stdout = e.output or ""
            lines = stdout.splitlines()
            stdout = "\n".join(lines)
            raise BackendError(stdout) from e
        except OSError as e:
            raise BackendError(f"Unable to run {command[0]}: {e}") from e

    @abc.abstractmethod
    def query_users(self, condition: UserCondition) -> list[User]:
        """Get users matching the condition."""

    @abc.abstractmethod
    def query_accounts(self, condition: AccountCondition) -> list[Account]:
        """Get accounts matching the condition."""

    @abc.abstractmethod
    def query_clusters(self, condition: Optional[ClusterCondition] = None) -> list[Cluster]:
        """Get clusters; all of them if the condition is empty."""

    @abc.abstractmethod
    def query_associations(self, condition: AssociationCondition) -> list[Association]:
        """Get associations matching the condition."""

    @abc.abstractmethod
    def query_wckeys(self, condition: WCKeyCondition) -> list[WCKey]:
        """Get WCKeys matching the condition."""

    @abc.abstractmethod
    def create_users(self, users: list[User]) -> None:
        """Create users together with their nested associations and WCKeys."""

    @abc.abstractmethod
    def create_associations(self, associations: list[Association]) -> None:
        """Create associations for existing users."""

    @abc.abstractmethod
    def create_wckeys(self, wckeys: list[WCKey]) -> None:
        """Create WCKeys for existing users."""

    @abc.abstractmethod
    def modify_users(self, condition: UserCondition, record: UserRecord) -> list[str]:
        """Modify users, returns names of the modified ones."""

    @abc.abstractmethod
    def modify_associations(
        self, condition: AssociationCondition, record: AssociationRecord
    ) -> list[str]:
        """Modify associations, returns descriptions of the modified ones."""

    @abc.abstractmethod
    def remove_users(self, condition: UserCondition) -> list[str]:
        """Remove users, returns names of the removed ones."""

    @abc.abstractmethod
    def remove_associations(self, condition: AssociationCondition) -> list[str]:
        """Remove associations, returns descriptions of the removed ones."""

    @abc.abstractmethod
    def remove_association_usage(self, condition: AssociationCondition) -> list[str]:
        """Reset raw usage of associations, returns descriptions of the reset ones."""

    @abc.abstractmethod
    def add_coordinators(self, accounts: list[str], condition: UserCondition) -> None:
        """Grant coordinator privilege over the accounts to the users."""

    @abc.abstractmethod
    def remove_coordinators(
        self, accounts: Optional[list[str]], condition: UserCondition
    ) -> list[str]:
        """Revoke coordinator privilege; accounts=None revokes it everywhere."""

    @abc.abstractmethod
    def commit(self, persist: bool) -> None:
        """Finalize (persist=True) or roll back (persist=False) pending changes."""
