"""Parser module for SLURM backend."""

from functools import cached_property
from typing import Optional

from acctmgr.backends import utils
from acctmgr.backends.structures import (
    Account,
    AdminLevel,
    Association,
    AssociationLimits,
    Cluster,
    User,
    WCKey,
)

USER_FORMAT = "User,DefaultAccount,DefaultWCKey,AdminLevel,Coordinators"
ACCOUNT_FORMAT = "Account,Descr,Org"
CLUSTER_FORMAT = "Cluster"
WCKEY_FORMAT = "WCKey,Cluster,User"
ASSOCIATION_FORMAT = ",".join(
    [
        "Cluster",
        "Account",
        "User",
        "Partition",
        "ParentName",
        *utils.LIMIT_LABELS.values(),
        "QOS",
        "DefaultQOS",
        "ID",
    ]
)


def split_list(value: str) -> list[str]:
    """Splits comma-separated list of the line."""
    return [item for item in value.split(",") if item]


def parse_optional_int(value: str) -> Optional[int]:
    """Converts an empty column into None."""
    value = value.strip()
    if not value:
        return None
    return utils.parse_int(value)


class SlurmLine:
    """Base class for sacctmgr --parsable2 line parsing."""

    def __init__(self, line: str) -> None:
        """Inits parts field from the specified line."""
        self._parts = line.split("|")

    def _get(self, index: int) -> str:
        if index >= len(self._parts):
            return ""
        return self._parts[index].strip()


class SlurmUserLine(SlurmLine):
    """Class for SLURM user line parsing."""

    @cached_property
    def name(self) -> str:
        """Returns user name from the line."""
        return self._get(0)

    @cached_property
    def admin_level(self) -> AdminLevel:
        """Returns admin level from the line."""
        return AdminLevel.from_string(self._get(3))

    @cached_property
    def coordinator_accounts(self) -> list[str]:
        """Returns accounts coordinated by the user."""
        return split_list(self._get(4))

    def to_user(self) -> User:
        """Builds user entity."""
        return User(
            name=self.name,
            default_account=self._get(1),
            default_wckey=self._get(2),
            admin_level=self.admin_level,
            coordinator_accounts=self.coordinator_accounts,
        )


class SlurmAssociationLine(SlurmLine):
    """Class for SLURM association line parsing."""

    @cached_property
    def limits(self) -> AssociationLimits:
        """Limits in the line."""
        limits = AssociationLimits()
        for index, name in enumerate(utils.LIMIT_LABELS, start=5):
            value = self._get(index)
            if name in utils.DURATION_FIELDS:
                parsed = utils.parse_duration(value) if value else None
            else:
                parsed = parse_optional_int(value)
            setattr(limits, name, parsed)
        offset = 5 + len(utils.LIMIT_LABELS)
        limits.qos = split_list(self._get(offset))
        limits.default_qos = self._get(offset + 1) or None
        return limits

    @cached_property
    def id(self) -> Optional[int]:
        """Association id."""
        return parse_optional_int(self._get(7 + len(utils.LIMIT_LABELS)))

    def to_association(self) -> Association:
        """Builds association entity."""
        return Association(
            cluster=self._get(0),
            account=self._get(1),
            user=self._get(2),
            partition=self._get(3) or None,
            parent=self._get(4),
            limits=self.limits,
            id=self.id,
        )


def parse_account(line: str) -> Account:
    """Parses account line."""
    parts = line.split("|")
    return Account(name=parts[0], description=parts[1], organization=parts[2])


def parse_cluster(line: str) -> Cluster:
    """Parses cluster line."""
    return Cluster(name=line.split("|")[0])


def parse_wckey(line: str) -> WCKey:
    """Parses WCKey line."""
    parts = line.split("|")
    return WCKey(name=parts[0], cluster=parts[1], user=parts[2])
