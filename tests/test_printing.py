"""Tests for listing output."""

import io

from acctmgr.backends.structures import Association, AssociationLimits, User
from acctmgr.commands import Diagnostics
from acctmgr.commands.printing import ReportPrinter, resolve_fields, user_row


def make_printer(names, **kwargs):
    stream = io.StringIO()
    fields = resolve_fields(names, Diagnostics(stream=io.StringIO()))
    return ReportPrinter(fields, stream=stream, **kwargs), stream


class TestResolveFields:
    """Test cases for resolving of format fields."""

    def test_widths(self):
        """Test default and explicit field widths."""
        fields = resolve_fields(["User", "Account%-15", "maxj"], Diagnostics(io.StringIO()))

        assert [(item.target, item.width) for item in fields] == [
            ("user", 10),
            ("account", -15),
            ("max_jobs", 7),
        ]

    def test_unknown(self):
        """Test that unknown fields and bad widths are reported."""
        diagnostics = Diagnostics(io.StringIO())

        assert resolve_fields(["Nope", "Account%x"], diagnostics) == []
        assert diagnostics.errors == ["Unknown field 'Nope'", "Bad width in field 'Account%x'"]


class TestReportPrinter:
    """Test cases for listing output."""

    def test_fixed_width(self):
        """Test that long values are truncated with '+'."""
        printer, stream = make_printer(["User%8", "Account%-6"])
        printer.print_header()
        printer.print_row({"user": "averyverylongname", "account": "a1"})

        assert stream.getvalue().splitlines() == [
            "    User Accou+ ",
            "-------- ------ ",
            "averyve+ a1     ",
        ]

    def test_parsable(self):
        """Test parsable output with a trailing delimiter."""
        printer, stream = make_printer(["User", "Account"], parsable=1, no_header=True)
        printer.print_row({"user": "alice"})

        assert stream.getvalue() == "alice||\n"

    def test_parsable2(self):
        """Test parsable output without a trailing delimiter."""
        printer, stream = make_printer(["User", "Account"], parsable=2)
        printer.print_header()
        printer.print_row({"user": "alice", "account": "a1"})

        assert stream.getvalue().splitlines() == ["User|Account", "alice|a1"]


class TestUserRow:
    """Test cases for user listing rows."""

    def test_with_association(self):
        """Test that association limits are formatted in the row."""
        user = User(name="alice", default_account="a1", coordinator_accounts=["a1", "a2"])
        association = Association(
            user="alice",
            account="a1",
            cluster="c1",
            limits=AssociationLimits(max_jobs=3, grp_wall=90, qos=["normal"]),
        )

        row = user_row(user, association)

        assert row["user"] == "alice"
        assert row["admin_level"] == "Not Set"
        assert row["coordinators"] == "a1,a2"
        assert row["max_jobs"] == "3"
        assert row["grp_wall"] == "01:30:00"
        assert row["qos"] == "normal"
        assert row["partition"] == ""
