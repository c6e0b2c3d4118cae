"""Tests for shared entities and value helpers."""

from acctmgr.backends import utils
from acctmgr.backends.structures import (
    INFINITE,
    AdminLevel,
    Association,
    AssociationLimits,
    merge_qos,
)


class TestAdminLevel:
    """Test cases for admin level parsing."""

    def test_abbreviations(self):
        """Test case-insensitive admin level prefixes."""
        assert AdminLevel.from_string("op") == AdminLevel.OPERATOR
        assert AdminLevel.from_string("Admin") == AdminLevel.ADMINISTRATOR
        assert AdminLevel.from_string("'none'") == AdminLevel.NONE
        assert AdminLevel.from_string("root") == AdminLevel.NOT_SET


class TestAssociationLimits:
    """Test cases for association limits."""

    def test_apply(self):
        """Test applying a record, -1 clearing a limit."""
        limits = AssociationLimits(max_jobs=3, grp_cpus=8, qos=["normal"])
        limits.apply(AssociationLimits(max_jobs=INFINITE, grp_jobs=2, qos=["+high"]))

        assert limits.max_jobs is None
        assert limits.grp_cpus == 8
        assert limits.grp_jobs == 2
        assert limits.qos == ["normal", "high"]

    def test_is_set(self):
        """Test detection of set limits."""
        assert not AssociationLimits().is_set()
        assert AssociationLimits(default_qos="").is_set()
        assert AssociationLimits(shares=1).is_set()

    def test_merge_qos(self):
        """Test replacing, adding and removing QOS entries."""
        assert merge_qos(["normal"], ["high", "low"]) == ["high", "low"]
        assert merge_qos(["normal"], ["+high", "-normal"]) == ["high"]


class TestAssociation:
    """Test cases for association entities."""

    def test_key_ignores_empty_partition(self):
        """Test that an empty partition is no partition."""
        association = Association(user="alice", account="a1", cluster="c1", partition="")

        assert association.key == ("alice", "a1", "c1", None)

    def test_describe_with_partition(self):
        """Test that the description names the partition."""
        association = Association(user="alice", account="a1", cluster="c1", partition="gpu")

        assert association.describe().endswith(" P = gpu")


class TestDurations:
    """Test cases for limit value helpers."""

    def test_parse(self):
        """Test parsing of durations into minutes."""
        assert utils.parse_duration("90") == 90
        assert utils.parse_duration("02:30:00") == 150
        assert utils.parse_duration("1-2") == 1560
        assert utils.parse_duration("-1") == INFINITE
        assert utils.parse_duration("soon") is None

    def test_format(self):
        """Test formatting of durations and limits."""
        assert utils.format_duration(150) == "02:30:00"
        assert utils.format_duration(1560) == "1-02:00:00"
        assert utils.format_limit("max_jobs", INFINITE) == "NONE"
        assert utils.format_limit("max_jobs", None) == ""

    def test_parse_int_units(self):
        """Test parsing of unit-suffixed integers."""
        assert utils.parse_int("5K") == 5120
        assert utils.parse_int("12") == 12
        assert utils.parse_int("2P") == 2 * 2**50
