"""Tests for coordinator grant and revoke."""

from acctmgr.backends.structures import AssociationCondition, UserCondition
from acctmgr.commands.coordinators import add_coordinator, delete_coordinator
from acctmgr.commands.orchestrator import ApplyState


def coordinated_accounts(client, name):
    condition = UserCondition(
        assoc_condition=AssociationCondition(users=[name]), with_coords=True
    )
    return client.query_users(condition)[0].coordinator_accounts


class TestAddCoordinator:
    """Test cases for granting coordinator privilege."""

    def test_grant(self, context, client, capsys):
        """Test that every user becomes coordinator of every account."""
        state = add_coordinator(context, ["Names=olduser,other", "Accounts=a1,a2"])

        assert state == ApplyState.COMMITTED
        assert coordinated_accounts(client, "olduser") == ["a1", "a2"]
        assert coordinated_accounts(client, "other") == ["a1", "a2"]
        output = capsys.readouterr().out
        assert " Adding Coordinator User(s)" in output
        assert " To Account(s) and all sub-accounts" in output

    def test_every_unknown_name_is_reported(self, context, client):
        """Test that all unknown users and accounts are reported."""
        assert add_coordinator(context, ["Names=ghost,olduser,phantom", "Accounts=nope"]) is None

        assert context.diagnostics.errors == [
            "You specified a non-existent account 'nope'.",
            "You specified a non-existent user 'ghost'.",
            "You specified a non-existent user 'phantom'.",
        ]
        assert coordinated_accounts(client, "olduser") == []

    def test_account_list_required(self, context):
        """Test that an account list is required."""
        assert add_coordinator(context, ["Names=olduser"]) is None
        assert context.diagnostics.errors == ["You need to specify a account list here."]

    def test_user_list_required(self, context):
        """Test that a user list is required."""
        assert add_coordinator(context, ["Accounts=a1"]) is None
        assert context.diagnostics.errors == ["You need to specify a user list here."]

    def test_no_conditions(self, context):
        """Test that a grant without conditions is refused."""
        assert add_coordinator(context, []) is None
        assert context.diagnostics.errors == [
            "You need to specify conditions to add the coordinator."
        ]


class TestDeleteCoordinator:
    """Test cases for revoking coordinator privilege."""

    def test_revoke_one_account(self, context, client, capsys):
        """Test revoking the privilege on one account."""
        add_coordinator(context, ["Names=olduser", "Accounts=a1,a2"])
        capsys.readouterr()

        state = delete_coordinator(context, ["Names=olduser", "Accounts=a1"])

        assert state == ApplyState.COMMITTED
        assert coordinated_accounts(client, "olduser") == ["a2"]
        output = capsys.readouterr().out
        assert " Removing Coordinators with user name" in output
        assert " From Account(s)" in output
        assert " Removed Coordinators (sub accounts not listed)..." in output

    def test_revoke_all_accounts(self, context, client, capsys):
        """Test revoking the privilege on all accounts of a user."""
        add_coordinator(context, ["Names=olduser", "Accounts=a1,a2"])
        capsys.readouterr()

        delete_coordinator(context, ["Names=olduser"])

        assert coordinated_accounts(client, "olduser") == []
        assert " From all accounts" in capsys.readouterr().out

    def test_revoke_everyone_from_account(self, context, client):
        """Test removing all coordinators of an account."""
        add_coordinator(context, ["Names=olduser,other", "Accounts=a1"])

        delete_coordinator(context, ["Accounts=a1"])

        assert coordinated_accounts(client, "olduser") == []
        assert coordinated_accounts(client, "other") == []

    def test_nothing_to_revoke(self, context, capsys):
        """Test that nothing to revoke ends without a commit."""
        assert delete_coordinator(context, ["Names=olduser"]) == ApplyState.DISCARDED
        assert " Nothing removed" in capsys.readouterr().out

    def test_no_lists(self, context):
        """Test that a revoke without user or account list is refused."""
        assert delete_coordinator(context, []) is None
        assert context.diagnostics.errors == [
            "You need to specify a user list or account list here."
        ]
