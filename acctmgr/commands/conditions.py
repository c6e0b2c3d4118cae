"""Building of user and association conditions from clauses."""

from __future__ import annotations

from typing import Iterable, Optional

from acctmgr.backends.structures import AdminLevel, AssociationCondition, UserCondition
from acctmgr.commands import Diagnostics, Scope
from acctmgr.commands.tokenizer import Clause, KeywordTable, add_names, keyword_matches, tokenize

FLAG_KEYWORDS = KeywordTable(
    [
        ("WithAssoc", 5),
        ("WithCoordinators", 5),
        ("WithDeleted", 5),
        ("WithRawQOSLevel", 5),
        ("WOPLimits", 4),
        ("WithoutParentLimits", 5, "woplimits"),
        ("Where", 5),
    ]
)

USER_KEYWORDS = KeywordTable(
    [
        ("Names", 1, "users"),
        ("Users", 1),
        ("AdminLevel", 2),
        ("DefaultAccount", 8),
        ("DefaultWCKey", 8),
        ("Format", 1),
    ]
)

ASSOCIATION_KEYWORDS = KeywordTable(
    [
        ("Accounts", 2),
        ("Acct", 4, "accounts"),
        ("Clusters", 1),
        ("Partitions", 3),
        ("QosLevel", 1, "qos"),
    ]
)


def is_separator(clause: Clause, keyword: str) -> bool:
    """Checks if the clause is a bare Where/Set separator."""
    length = 5 if keyword.lower() == "where" else 3
    return clause.bare and keyword_matches(clause.keyword, keyword, length)


class AssociationConditionBuilder:
    """Fills association condition from clauses."""

    def __init__(self, diagnostics: Diagnostics, condition: AssociationCondition) -> None:
        """Inits builder for the condition."""
        self.diagnostics = diagnostics
        self.condition = condition

    def add_clause(self, clause: Clause) -> bool:
        """Returns False if the clause is not an association condition."""
        if clause.bare:
            return False
        target = ASSOCIATION_KEYWORDS.match(clause.keyword)
        if target is None:
            return False
        names: list[str] = getattr(self.condition, target)
        if not add_names(names, clause.value):
            self.diagnostics.error(f"No value given for {clause.keyword}")
        return True


class ConditionBuilder:
    """Fills user condition from clauses.

    add_clause returns the scope constrained by the clause; the
    accumulated scope of all clauses is kept in self.scope.
    """

    def __init__(
        self,
        diagnostics: Diagnostics,
        condition: Optional[UserCondition] = None,
        format_fields: Optional[list[str]] = None,
    ) -> None:
        """Inits builder for the condition."""
        self.diagnostics = diagnostics
        self.condition = condition or UserCondition()
        self.format_fields = format_fields
        self.scope = Scope.NONE
        self.association_builder = AssociationConditionBuilder(
            diagnostics, self.condition.assoc_condition
        )

    def _set_flag(self, target: str) -> None:
        if target == "withassoc":
            self.condition.with_assocs = True
        elif target == "withcoordinators":
            self.condition.with_coords = True
        elif target == "withdeleted":
            self.condition.with_deleted = True
            self.condition.assoc_condition.with_deleted = True
        elif target == "withrawqoslevel":
            self.condition.assoc_condition.with_raw_qos = True
        elif target == "woplimits":
            self.condition.assoc_condition.without_parent_limits = True

    def _add_user_names(self, clause: Clause) -> Scope:
        users = self.condition.assoc_condition.users
        if users is None:
            users = self.condition.assoc_condition.users = []
        if add_names(users, clause.value):
            return Scope.USER
        self.diagnostics.error(f"No user names given in {clause.text}")
        return Scope.NONE

    def _add_user_clause(self, clause: Clause, target: str) -> Scope:
        if target == "users":
            return self._add_user_names(clause)
        if target == "adminlevel":
            level = AdminLevel.from_string(clause.value)
            if level == AdminLevel.NOT_SET:
                self.diagnostics.error(f"Unknown admin level: {clause.value}")
                return Scope.NONE
            self.condition.admin_level = level
            return Scope.USER
        if target == "defaultaccount":
            if add_names(self.condition.default_accounts, clause.value):
                return Scope.USER
        elif target == "defaultwckey":
            if add_names(self.condition.default_wckeys, clause.value):
                return Scope.USER
        elif target == "format":
            if self.format_fields is not None:
                add_names(self.format_fields, clause.value)
            return Scope.NONE
        self.diagnostics.error(f"No value given for {clause.keyword}")
        return Scope.NONE

    def add_clause(self, clause: Clause) -> Scope:
        """Adds one clause to the condition."""
        result = Scope.NONE
        if clause.bare:
            target = FLAG_KEYWORDS.match(clause.keyword)
            if target is not None:
                self._set_flag(target)
                return result
            result = self._add_user_names(clause)
        else:
            target = USER_KEYWORDS.match(clause.keyword)
            if target is not None:
                result = self._add_user_clause(clause, target)
            elif self.association_builder.add_clause(clause):
                result = Scope.ASSOCIATION
            else:
                self.diagnostics.error(
                    f"Unknown condition: {clause.text}\n Use keyword 'set' to modify value"
                )
        self.scope |= result
        return result


def parse_conditions(args: Iterable[str], builder: ConditionBuilder) -> Scope:
    """Feeds all directives to the builder, Where and Set separators are skipped."""
    for arg in args:
        clause = tokenize(arg)
        if is_separator(clause, "where") or is_separator(clause, "set"):
            continue
        builder.add_clause(clause)
    return builder.scope
