"""Building of user and association mutation records from clauses."""

from __future__ import annotations

from typing import Optional

from acctmgr.backends import utils as backend_utils
from acctmgr.backends.structures import (
    INFINITE,
    AdminLevel,
    AssociationLimits,
    AssociationRecord,
    UserRecord,
)
from acctmgr.commands import Diagnostics, Scope
from acctmgr.commands.tokenizer import Clause, KeywordTable, keyword_matches, split_names

LIMIT_KEYWORDS = KeywordTable(
    [
        ("Fairshare", 1, "shares"),
        ("Shares", 1, "shares"),
        ("GrpCPUMins", 7, "grp_cpu_mins"),
        ("GrpCPUs", 7, "grp_cpus"),
        ("GrpJobs", 4, "grp_jobs"),
        ("GrpNodes", 4, "grp_nodes"),
        ("GrpSubmitJobs", 4, "grp_submit_jobs"),
        ("GrpWall", 4, "grp_wall"),
        ("MaxCPUMinsPerJob", 7, "max_cpu_mins_per_job"),
        ("MaxCPUsPerJob", 7, "max_cpus_per_job"),
        ("MaxJobs", 4, "max_jobs"),
        ("MaxNodesPerJob", 4, "max_nodes_per_job"),
        ("MaxSubmitJobs", 4, "max_submit_jobs"),
        ("MaxWallDurationPerJob", 4, "max_wall_per_job"),
        ("QosLevel", 1, "qos"),
        ("DefaultQOS", 3, "default_qos"),
    ]
)

USER_RECORD_KEYWORDS = KeywordTable(
    [
        ("AdminLevel", 2),
        ("DefaultAccount", 8),
        ("DefaultWCKey", 8),
        ("NewName", 1),
        ("RawUsage", 7),
    ]
)


def parse_limit(value: str) -> Optional[int]:
    """Parses integer limit; -1 clears the limit, None means malformed."""
    try:
        number = int(value)
    except ValueError:
        return None
    if number < INFINITE:
        return None
    return number


class AssociationRecordBuilder:
    """Fills association limits from clauses."""

    def __init__(self, diagnostics: Diagnostics, limits: AssociationLimits) -> None:
        """Inits builder for the limits."""
        self.diagnostics = diagnostics
        self.limits = limits
        self.is_set = False

    def _set_qos(self, clause: Clause) -> None:
        names = split_names(clause.value)
        if not names:
            self.diagnostics.error(f"No QOS given in {clause.text}")
            return
        prefix = clause.option or ""
        self.limits.qos.extend(f"{prefix}{name}" for name in names)

    def add_clause(self, clause: Clause) -> bool:
        """Returns False if the clause is not an association limit."""
        if clause.bare:
            return False
        target = LIMIT_KEYWORDS.match(clause.keyword)
        if target is None:
            return False

        if target == "qos":
            self._set_qos(clause)
        elif target == "default_qos":
            value = clause.value
            self.limits.default_qos = "" if value in ("", str(INFINITE)) else value
        else:
            if target in backend_utils.DURATION_FIELDS:
                value = backend_utils.parse_duration(clause.value)
            else:
                value = parse_limit(clause.value)
            if value is None:
                self.diagnostics.error(f"Bad value for {clause.keyword}: {clause.value}")
                return True
            setattr(self.limits, target, value)
        self.is_set = True
        return True


class RecordBuilder:
    """Fills user record and association record from clauses.

    add_clause returns the scope touched by the clause; the accumulated
    scope of all clauses is kept in self.scope.
    """

    def __init__(self, diagnostics: Diagnostics) -> None:
        """Inits empty records."""
        self.diagnostics = diagnostics
        self.user_record = UserRecord()
        self.assoc_record = AssociationRecord()
        self.scope = Scope.NONE
        self.association_builder = AssociationRecordBuilder(
            diagnostics, self.assoc_record.limits
        )

    def _add_user_clause(self, clause: Clause, target: str) -> Scope:
        value = clause.value
        if target == "adminlevel":
            level = AdminLevel.from_string(value)
            if level == AdminLevel.NOT_SET:
                self.diagnostics.error(f"Unknown admin level: {value}")
                return Scope.NONE
            self.user_record.admin_level = level
        elif target == "rawusage":
            return self._set_raw_usage(value)
        elif not value:
            self.diagnostics.error(f"No value given for {clause.keyword}")
            return Scope.NONE
        elif target == "defaultaccount":
            self.user_record.default_account = value
        elif target == "defaultwckey":
            self.user_record.default_wckey = value
        elif target == "newname":
            self.user_record.new_name = value
        return Scope.USER

    def _set_raw_usage(self, value: str) -> Scope:
        try:
            usage = float(value)
        except ValueError:
            self.diagnostics.error(f"Bad value for RawUsage: {value}")
            return Scope.NONE
        if usage != 0:
            self.diagnostics.error("Raw usage can only be set to 0 (zero)")
            return Scope.NONE
        self.assoc_record.raw_usage = 0.0
        return Scope.ASSOCIATION

    def add_clause(self, clause: Clause) -> Scope:
        """Adds one clause to the records."""
        if clause.bare:
            if not keyword_matches(clause.keyword, "Set", 3):
                self.diagnostics.error(
                    f"Bad format on {clause.text}: End your option with an '=' sign"
                )
            return Scope.NONE

        result = Scope.NONE
        target = USER_RECORD_KEYWORDS.match(clause.keyword)
        if target is not None:
            result = self._add_user_clause(clause, target)
        elif self.association_builder.add_clause(clause):
            if self.association_builder.is_set:
                result = Scope.ASSOCIATION
        else:
            self.diagnostics.error(
                f"Unknown option: {clause.text}\n Use keyword 'where' to modify condition"
            )
        self.scope |= result
        return result
