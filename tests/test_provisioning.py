"""Tests for the association provisioning engine and "add user"."""

from unittest import mock

import pytest

from acctmgr.backends.exceptions import BackendError, PermissionDeniedError
from acctmgr.backends.structures import AdminLevel, AssociationCondition, UserCondition
from acctmgr.commands.orchestrator import ApplyState
from acctmgr.commands.provisioning import ProvisioningEngine, parse_add_user
from acctmgr.commands.users import add_user
from acctmgr.common.structures import WCKeyFetchPolicy


def plan_for(context, args):
    request = parse_add_user(args, context.diagnostics)
    assert request is not None
    return ProvisioningEngine(context).plan(request)


def user_associations(client, name):
    return client.query_associations(AssociationCondition(users=[name]))


class TestParseAddUser:
    """Test cases for parsing of "add user" directives."""

    def test_request(self, context):
        """Test that every directive lands in the request."""
        request = parse_add_user(
            ["alice,bob", "Accounts=a1,a2", "DefaultAccount=a2", "Ad=Operator", "MaxJobs=4"],
            context.diagnostics,
        )

        assert request.users == ["alice", "bob"]
        assert request.accounts == ["a1", "a2"]
        assert request.default_account == "a2"
        assert request.admin_level == AdminLevel.OPERATOR
        assert request.limits.max_jobs == 4
        assert request.limits_set

    def test_default_account_joins_accounts(self, context):
        """Test that the default account is added to the account list."""
        request = parse_add_user(["alice", "DefaultAccount=a3"], context.diagnostics)

        assert request.accounts == ["a3"]

    def test_repeated_default_account(self, context):
        """Test that a second DefaultAccount is refused."""
        request = parse_add_user(
            ["alice", "DefaultAccount=a1", "DefaultAccount=a2"], context.diagnostics
        )

        assert request is None
        assert context.diagnostics.errors == ["Already listed DefaultAccount a1"]

    @pytest.mark.parametrize("directive", ["DefaultAccount=", "DefaultWCKey=''", "WCKeys=,"])
    def test_empty_value(self, context, directive):
        """Test that directives without a value are reported."""
        keyword = directive.split("=")[0]

        assert parse_add_user(["alice", "Accounts=a1", directive], context.diagnostics) is None
        assert context.diagnostics.errors == [f"No value given for {keyword}"]

    def test_unknown_option(self, context):
        """Test that unknown options are reported."""
        assert parse_add_user(["alice", "Bogus=1"], context.diagnostics) is None
        assert context.diagnostics.errors == ["Unknown option: Bogus=1"]

    def test_no_user(self, context):
        """Test that a user name is required."""
        assert parse_add_user(["Accounts=a1"], context.diagnostics) is None
        assert context.diagnostics.errors == ["Need name of user to add."]


class TestProvisioningEngine:
    """Test cases for drafting of missing users, associations and WCKeys."""

    def test_cross_product(self, context):
        """Test that every user, account and cluster combination is drafted."""
        plan = plan_for(context, ["alice,bob", "Accounts=a1,a2"])

        assert [user.name for user in plan.users] == ["alice", "bob"]
        assert plan.default_account == "a1"
        keys = {item.key for item in plan.all_associations}
        assert keys == {
            (user, account, cluster, None)
            for user in ("alice", "bob")
            for account in ("a1", "a2")
            for cluster in ("c1", "c2")
        }
        assert not context.diagnostics.failed

    def test_cross_product_with_existing_cluster(self, context):
        """Test that existing associations of several users are skipped."""
        plan = plan_for(context, ["olduser,other", "Accounts=a1"])

        assert {item.key for item in plan.associations} == {
            ("olduser", "a1", "c2", None),
            ("other", "a1", "c2", None),
        }

    def test_existing_user_gets_only_missing_associations(self, context):
        """Test that an existing user is not drafted again."""
        plan = plan_for(context, ["olduser", "Accounts=a1,a2"])

        assert plan.users == []
        assert {item.key for item in plan.associations} == {
            ("olduser", "a1", "c2", None),
            ("olduser", "a2", "c2", None),
        }

    def test_partitions_exclude_cluster_wide_association(self, context):
        """Test that partitions replace the cluster-wide association."""
        plan = plan_for(context, ["alice", "Accounts=a1", "Clusters=c1", "Partitions=gpu,cpu"])

        partitions = sorted(item.partition for item in plan.all_associations)
        assert partitions == ["cpu", "gpu"]

    def test_missing_account_is_reported_once(self, context):
        """Test that a missing account is reported once for all users."""
        plan = plan_for(context, ["alice,bob", "Accounts=a1,nosuchacct"])

        assert len(plan.all_associations) == 4
        assert {item.account for item in plan.all_associations} == {"a1"}
        assert context.diagnostics.errors == [
            "This account 'nosuchacct' doesn't exist.\n"
            "        Contact your admin to add this account."
        ]

    def test_missing_base_association(self, context):
        """Test that an account missing on a cluster is excluded there."""
        plan = plan_for(context, ["alice", "Accounts=a3"])

        assert {item.key for item in plan.all_associations} == {("alice", "a3", "c1", None)}
        assert context.diagnostics.errors == [
            "This account 'a3' doesn't exist on cluster c2\n"
            "        Contact your admin to add this account."
        ]

    def test_unknown_cluster(self, context):
        """Test that a request naming only unknown clusters stops."""
        plan = plan_for(context, ["alice", "Accounts=a1", "Clusters=c9"])

        assert plan is None
        assert context.diagnostics.errors[0].startswith("This cluster 'c9' doesn't exist.")

    def test_no_account(self, context):
        """Test that an account is required without WCKeys."""
        assert plan_for(context, ["alice"]) is None
        assert context.diagnostics.errors == ["Need name of account to add user to."]

    def test_limits_template(self, context):
        """Test that limits are copied to every drafted association."""
        plan = plan_for(context, ["alice", "Accounts=a1", "MaxJobs=5", "QosLevel=normal"])

        for association in plan.all_associations:
            assert association.limits.max_jobs == 5
            assert association.limits.qos == ["normal"]
        preview = plan.preview()
        assert " Non Default Settings" in preview
        assert any(line.strip().startswith("MaxJobs") for line in preview)

    def test_missing_uid_declined(self, context):
        """Test that declining the uid question aborts the plan."""
        context.resolve_uid.return_value = None
        context.confirm.return_value = False

        plan = plan_for(context, ["alice", "Accounts=a1"])

        assert plan.aborted
        context.confirm.assert_called_once_with(
            "There is no uid for user 'alice'\nAre you sure you want to continue?"
        )

    def test_wckeys(self, context):
        """Test that WCKeys are drafted on every cluster when tracked."""
        context.configuration.track_wckey = True

        plan = plan_for(context, ["alice", "Accounts=a1", "WCKeys=w1"])

        assert plan.default_wckey == "w1"
        assert {item.key for item in plan.all_wckeys} == {
            ("alice", "w1", "c1"),
            ("alice", "w1", "c2"),
        }
        assert plan.users[0].default_wckey == "w1"

    def test_wckeys_ignored_without_tracking(self, context):
        """Test that WCKeys are skipped when not tracked."""
        plan = plan_for(context, ["alice", "Accounts=a1", "WCKeys=w1"])

        assert plan.all_wckeys == []

    @pytest.mark.parametrize(
        "error",
        [BackendError("Connection refused"), PermissionDeniedError("Permission denied")],
    )
    def test_wckey_fetch_failure_tolerated(self, context, client, error):
        """Test that the plan goes on without known WCKeys under the soft policy."""
        context.configuration.track_wckey = True

        with mock.patch.object(client, "query_wckeys", side_effect=error):
            plan = plan_for(context, ["alice", "Accounts=a1", "WCKeys=w1"])

        assert plan is not None
        assert {item.key for item in plan.all_wckeys} == {
            ("alice", "w1", "c1"),
            ("alice", "w1", "c2"),
        }
        assert not context.diagnostics.failed

    def test_wckey_fetch_failure_strict(self, context, client):
        """Test that the strict policy stops the plan when WCKeys can't be fetched."""
        context.configuration.track_wckey = True
        context.configuration.wckey_fetch_policy = WCKeyFetchPolicy.STRICT

        with mock.patch.object(
            client, "query_wckeys", side_effect=BackendError("Connection refused")
        ):
            plan = plan_for(context, ["alice", "Accounts=a1", "WCKeys=w1"])

        assert plan is None
        assert context.diagnostics.errors == [
            "Problem getting WCKeys from database: Connection refused"
        ]


class TestAddUser:
    """Test cases for the "add user" command."""

    def test_add_and_repeat(self, context, client, capsys):
        """Test that repeating the same request adds nothing."""
        args = ["alice,bob", "Accounts=a1,a2"]

        assert add_user(context, args) == ApplyState.COMMITTED
        assert len(user_associations(client, "alice")) == 4
        assert len(user_associations(client, "bob")) == 4
        assert " Adding User(s)" in capsys.readouterr().out

        assert add_user(context, args) is None
        assert " Nothing new added." in capsys.readouterr().out
        assert len(client.query_associations(AssociationCondition(users=[]))) == 11
        assert not context.diagnostics.failed

    def test_new_user_settings(self, context, client):
        """Test that new users get the default account and admin level."""
        add_user(context, ["alice", "DefaultAccount=a2", "Accounts=a1", "AdminLevel=Operator"])

        users = client.query_users(
            UserCondition(assoc_condition=AssociationCondition(users=["alice"]))
        )
        assert users[0].default_account == "a2"
        assert users[0].admin_level == AdminLevel.OPERATOR

    def test_partial_failure_still_commits(self, context, client):
        """Test that valid associations are committed despite a missing account."""
        state = add_user(context, ["carol", "Accounts=a1,nosuchacct"])

        assert state == ApplyState.COMMITTED
        assert len(user_associations(client, "carol")) == 2
        assert context.diagnostics.exit_code == 1

    def test_new_user_without_associations(self, context, client):
        """Test that a user without any valid association is not created."""
        assert add_user(context, ["frank", "Accounts=a3", "Clusters=c2"]) is None

        assert context.diagnostics.errors[-1] == "No associations or wckeys created."
        users = client.query_users(
            UserCondition(assoc_condition=AssociationCondition(users=["frank"]))
        )
        assert users == []

    def test_discarded(self, context, client, capsys):
        """Test that declining the commit question discards the changes."""
        context.confirm.return_value = False

        assert add_user(context, ["alice", "Accounts=a1"]) == ApplyState.DISCARDED
        assert user_associations(client, "alice") == []
        assert " Changes Discarded" in capsys.readouterr().out
