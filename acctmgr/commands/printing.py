"""Tabular and parsable printing of listings."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from acctmgr.backends import utils as backend_utils
from acctmgr.backends.structures import Association, User
from acctmgr.commands import Diagnostics
from acctmgr.commands.tokenizer import KeywordTable

PARSABLE_NONE = 0
PARSABLE_WITH_ENDING = 1
PARSABLE_NO_ENDING = 2

# Keyword, min abbreviation, target, header, width
FIELD_DEFINITIONS = [
    ("Account", 3, "account", "Account", 10),
    ("AdminLevel", 2, "admin_level", "Admin", 9),
    ("Cluster", 2, "cluster", "Cluster", 10),
    ("Coordinators", 2, "coordinators", "Coord Accounts", 20),
    ("DefaultAccount", 8, "default_account", "Def Acct", 10),
    ("DefaultQOS", 8, "default_qos", "Def QOS", 9),
    ("DefaultWCKey", 8, "default_wckey", "Def WCKey", 10),
    ("Fairshare", 1, "shares", "Share", 9),
    ("GrpCPUMins", 7, "grp_cpu_mins", "GrpCPUMins", 11),
    ("GrpCPUs", 7, "grp_cpus", "GrpCPUs", 8),
    ("GrpJobs", 4, "grp_jobs", "GrpJobs", 7),
    ("GrpNodes", 4, "grp_nodes", "GrpNodes", 8),
    ("GrpSubmitJobs", 4, "grp_submit_jobs", "GrpSubmit", 9),
    ("GrpWall", 4, "grp_wall", "GrpWall", 11),
    ("ID", 2, "id", "ID", 6),
    ("MaxCPUMinsPerJob", 7, "max_cpu_mins_per_job", "MaxCPUMins", 11),
    ("MaxCPUsPerJob", 7, "max_cpus_per_job", "MaxCPUs", 8),
    ("MaxJobs", 4, "max_jobs", "MaxJobs", 7),
    ("MaxNodesPerJob", 4, "max_nodes_per_job", "MaxNodes", 8),
    ("MaxSubmitJobs", 4, "max_submit_jobs", "MaxSubmit", 9),
    ("MaxWallDurationPerJob", 4, "max_wall_per_job", "MaxWall", 11),
    ("ParentName", 3, "parent", "Par Name", 10),
    ("Partition", 4, "partition", "Partition", 10),
    ("QOS", 1, "qos", "QOS", 20),
    ("Shares", 1, "shares", "Share", 9),
    ("User", 1, "user", "User", 10),
]

FIELD_KEYWORDS = KeywordTable([item[:3] for item in FIELD_DEFINITIONS])

FIELD_HEADERS = {item[2]: (item[3], item[4]) for item in FIELD_DEFINITIONS}


@dataclass
class PrintField:
    """Column of a listing."""

    target: str
    header: str
    width: int


def resolve_fields(names: list[str], diagnostics: Diagnostics) -> list[PrintField]:
    """Converts format entries like "User" or "Account%20" into columns."""
    fields = []
    for name in names:
        keyword, _, width = name.partition("%")
        target = FIELD_KEYWORDS.match(keyword)
        if target is None:
            diagnostics.error(f"Unknown field '{keyword}'")
            continue
        header, default_width = FIELD_HEADERS[target]
        try:
            column_width = int(width) if width else default_width
        except ValueError:
            diagnostics.error(f"Bad width in field '{name}'")
            continue
        fields.append(PrintField(target=target, header=header, width=column_width))
    return fields


def user_row(user: User, association: Optional[Association]) -> dict[str, str]:
    """Values of one listing line."""
    row = {
        "user": user.name,
        "admin_level": user.admin_level.value,
        "default_account": user.default_account,
        "default_wckey": user.default_wckey,
        "coordinators": ",".join(user.coordinator_accounts),
    }
    if association is None:
        return row

    limits = association.limits
    row.update(
        {
            "account": association.account,
            "cluster": association.cluster,
            "partition": association.partition or "",
            "parent": association.parent,
            "id": str(association.id) if association.id is not None else "",
            "qos": ",".join(limits.qos),
            "default_qos": limits.default_qos or "",
        }
    )
    for name in backend_utils.LIMIT_LABELS:
        row[name] = backend_utils.format_limit(name, getattr(limits, name))
    return row


class ReportPrinter:
    """Prints rows in fixed-width columns or delimited by "|"."""

    def __init__(
        self,
        fields: list[PrintField],
        parsable: int = PARSABLE_NONE,
        no_header: bool = False,
        stream: Optional[TextIO] = None,
    ) -> None:
        """Inits printer."""
        self.fields = fields
        self.parsable = parsable
        self.no_header = no_header
        self.stream = stream

    def _format(self, field: PrintField, value: str) -> str:
        if self.parsable:
            return value
        width = abs(field.width)
        if len(value) > width:
            value = value[: width - 1] + "+"
        if field.width < 0:
            return value.ljust(width)
        return value.rjust(width)

    def _join(self, values: list[str]) -> str:
        if self.parsable == PARSABLE_WITH_ENDING:
            return "".join(f"{value}|" for value in values)
        if self.parsable == PARSABLE_NO_ENDING:
            return "|".join(values)
        return " ".join(values) + " "

    def _write(self, line: str) -> None:
        print(line, file=self.stream or sys.stdout)

    def print_header(self) -> None:
        """Prints column headers unless disabled."""
        if self.no_header:
            return
        self._write(self._join([self._format(item, item.header) for item in self.fields]))
        if not self.parsable:
            self._write(" ".join("-" * abs(item.width) for item in self.fields) + " ")

    def print_row(self, row: dict[str, str]) -> None:
        """Prints one line."""
        values = [self._format(item, row.get(item.target, "")) for item in self.fields]
        self._write(self._join(values))
