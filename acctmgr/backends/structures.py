"""Entities, conditions and records shared between the storage backends."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional

# Value of a limit in a mutation record meaning "clear the limit".
INFINITE = -1


class AdminLevel(Enum):
    """Administrative privilege of a user in the accounting database."""

    NOT_SET = "Not Set"
    NONE = "None"
    OPERATOR = "Operator"
    ADMINISTRATOR = "Administrator"

    @classmethod
    def from_string(cls, value: str) -> AdminLevel:
        """Converts a (possibly abbreviated) level name into the enum.

        Unknown strings map to NOT_SET.
        """
        value = value.strip().strip("'\"").lower()
        if not value:
            return cls.NOT_SET
        if "none".startswith(value):
            return cls.NONE
        if "operator".startswith(value):
            return cls.OPERATOR
        if "administrator".startswith(value):
            return cls.ADMINISTRATOR
        return cls.NOT_SET


@dataclass
class Cluster:
    """Cluster registered in accounting."""

    name: str = ""


@dataclass
class Account:
    """Account, a node of the organizational tree."""

    name: str = ""
    description: str = ""
    organization: str = ""
    parent: str = ""


@dataclass
class AssociationLimits:
    """Limits template carried by an association.

    None means the limit is not set. Inside a mutation record INFINITE
    clears an existing limit and qos entries may carry a "+" or "-" prefix.
    """

    shares: Optional[int] = None
    grp_cpu_mins: Optional[int] = None
    grp_cpus: Optional[int] = None
    grp_jobs: Optional[int] = None
    grp_nodes: Optional[int] = None
    grp_submit_jobs: Optional[int] = None
    grp_wall: Optional[int] = None
    max_cpu_mins_per_job: Optional[int] = None
    max_cpus_per_job: Optional[int] = None
    max_jobs: Optional[int] = None
    max_nodes_per_job: Optional[int] = None
    max_submit_jobs: Optional[int] = None
    max_wall_per_job: Optional[int] = None
    qos: list[str] = field(default_factory=list)
    default_qos: Optional[str] = None

    @classmethod
    def numeric_fields(cls) -> list[str]:
        """Names of the integer limits."""
        return [item.name for item in fields(cls) if item.name not in ("qos", "default_qos")]

    def is_set(self) -> bool:
        """Checks if any limit differs from the defaults."""
        if self.qos or self.default_qos is not None:
            return True
        return any(getattr(self, name) is not None for name in self.numeric_fields())

    def copy(self) -> AssociationLimits:
        """Returns an independent copy."""
        return copy.deepcopy(self)

    def apply(self, update: AssociationLimits) -> None:
        """Applies a mutation record in place."""
        for name in self.numeric_fields():
            value = getattr(update, name)
            if value is None:
                continue
            setattr(self, name, None if value == INFINITE else value)

        if update.default_qos is not None:
            self.default_qos = update.default_qos or None

        if update.qos:
            self.qos = merge_qos(self.qos, update.qos)


def merge_qos(current: list[str], changes: list[str]) -> list[str]:
    """Merges qos changes into a qos list.

    Plain entries replace the list, "+name" adds and "-name" removes.
    """
    plain = [item for item in changes if item[:1] not in ("+", "-")]
    result = list(plain) if plain else list(current)
    for item in changes:
        if item.startswith("+") and item[1:] not in result:
            result.append(item[1:])
        elif item.startswith("-") and item[1:] in result:
            result.remove(item[1:])
    return result


@dataclass
class Association:
    """Relation binding a user, an account, a cluster and a partition.

    An empty user marks the base association of the account on the cluster.
    """

    user: str = ""
    account: str = ""
    cluster: str = ""
    partition: Optional[str] = None
    parent: str = ""
    limits: AssociationLimits = field(default_factory=AssociationLimits)
    raw_usage: float = 0.0
    running_jobs: int = 0
    deleted: bool = False
    id: Optional[int] = None

    @property
    def key(self) -> tuple[str, str, str, Optional[str]]:
        """Unique key of the association."""
        return (self.user, self.account, self.cluster, self.partition or None)

    def describe(self) -> str:
        """Short description used in lists of affected objects."""
        text = f"C = {self.cluster:<10} A = {self.account:<10} U = {self.user:<9}"
        if self.partition:
            text += f" P = {self.partition}"
        return text


@dataclass
class WCKey:
    """Workload characterization key (charge key) of a user on a cluster."""

    user: str = ""
    name: str = ""
    cluster: str = ""
    deleted: bool = False

    @property
    def key(self) -> tuple[str, str, str]:
        """Unique key of the WCKey."""
        return (self.user, self.name, self.cluster)


@dataclass
class User:
    """User of the accounting database."""

    name: str = ""
    admin_level: AdminLevel = AdminLevel.NOT_SET
    default_account: str = ""
    default_wckey: str = ""
    coordinator_accounts: list[str] = field(default_factory=list)
    associations: list[Association] = field(default_factory=list)
    wckeys: list[WCKey] = field(default_factory=list)
    deleted: bool = False


@dataclass
class AssociationCondition:
    """Filter for associations.

    users=None selects every association including the account ones,
    users=[] selects only user associations.
    """

    users: Optional[list[str]] = None
    accounts: list[str] = field(default_factory=list)
    clusters: list[str] = field(default_factory=list)
    partitions: list[str] = field(default_factory=list)
    qos: list[str] = field(default_factory=list)
    with_deleted: bool = False
    with_raw_qos: bool = False
    without_parent_limits: bool = False


@dataclass
class UserCondition:
    """Filter for users."""

    assoc_condition: AssociationCondition = field(
        default_factory=lambda: AssociationCondition(users=[])
    )
    admin_level: AdminLevel = AdminLevel.NOT_SET
    default_accounts: list[str] = field(default_factory=list)
    default_wckeys: list[str] = field(default_factory=list)
    with_assocs: bool = False
    with_coords: bool = False
    with_deleted: bool = False

    @property
    def names(self) -> list[str]:
        """User names of the condition."""
        return self.assoc_condition.users or []


@dataclass
class AccountCondition:
    """Filter for accounts."""

    names: list[str] = field(default_factory=list)
    with_deleted: bool = False


@dataclass
class ClusterCondition:
    """Filter for clusters."""

    names: list[str] = field(default_factory=list)


@dataclass
class WCKeyCondition:
    """Filter for WCKeys."""

    names: list[str] = field(default_factory=list)
    users: list[str] = field(default_factory=list)
    clusters: list[str] = field(default_factory=list)
    with_deleted: bool = False


@dataclass
class AssociationRecord:
    """Mutation payload for associations."""

    limits: AssociationLimits = field(default_factory=AssociationLimits)
    raw_usage: Optional[float] = None


@dataclass
class UserRecord:
    """Mutation payload for users."""

    admin_level: AdminLevel = AdminLevel.NOT_SET
    default_account: Optional[str] = None
    default_wckey: Optional[str] = None
    new_name: Optional[str] = None
