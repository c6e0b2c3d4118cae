"""End-to-end tests of the command line entrypoint."""

from unittest import mock

import pytest
import yaml

from acctmgr import main
from acctmgr.backends.file_backend.client import FileClient
from acctmgr.backends.structures import AssociationCondition


@pytest.fixture
def database_path(tmp_path):
    path = tmp_path / "acctmgr-db.yaml"
    client = FileClient(str(path))
    client.add_cluster("c1")
    client.add_account("a1")
    client.commit(True)
    return path


@pytest.fixture
def config_path(tmp_path, database_path):
    path = tmp_path / "acctmgr-config.yaml"
    data = {"backend_type": "file", "backend_settings": {"database_path": str(database_path)}}
    path.write_text(yaml.safe_dump(data), encoding="UTF-8")
    return str(path)


def stored_associations(database_path, name):
    return FileClient(str(database_path)).query_associations(AssociationCondition(users=[name]))


class TestRun:
    """Test cases for running one command."""

    def test_add_then_list(self, config_path, database_path, capsys):
        """Test that an added user shows up in the listing."""
        # "root" is resolvable on every Linux host, so no uid question is asked
        assert main.run(["-c", config_path, "-i", "add", "user", "root", "Accounts=a1"]) == 0

        associations = stored_associations(database_path, "root")
        assert [item.key for item in associations] == [("root", "a1", "c1", None)]
        capsys.readouterr()

        assert main.run(["-c", config_path, "-P", "-n", "show", "user"]) == 0
        assert capsys.readouterr().out.splitlines() == ["root|a1|None"]

    def test_immediate_answers_uid_question(self, config_path, database_path):
        """Test that immediate mode adds a user without uid and without asking."""
        with mock.patch("acctmgr.common.utils.pwd.getpwnam", side_effect=KeyError), mock.patch(
            "builtins.input", side_effect=EOFError
        ) as input_:
            status = main.run(
                ["-c", config_path, "-i", "add", "user", "nouiduser", "Accounts=a1"]
            )

        assert status == 0
        input_.assert_not_called()
        associations = stored_associations(database_path, "nouiduser")
        assert [item.key for item in associations] == [("nouiduser", "a1", "c1", None)]

    def test_uid_question_without_input(self, config_path, database_path):
        """Test that an unanswered uid question adds nothing."""
        with mock.patch("acctmgr.common.utils.pwd.getpwnam", side_effect=KeyError), mock.patch(
            "builtins.input", side_effect=EOFError
        ) as input_:
            status = main.run(["-c", config_path, "add", "user", "nouiduser", "Accounts=a1"])

        assert status == 0
        input_.assert_called_once()
        assert stored_associations(database_path, "nouiduser") == []

    def test_error_sets_exit_status(self, config_path, capsys):
        """Test that a reported error gives exit status 1."""
        assert main.run(["-c", config_path, "-i", "add", "user", "root", "Bogus=1"]) == 1
        assert "Unknown option: Bogus=1" in capsys.readouterr().err

    def test_unknown_request(self, config_path, capsys):
        """Test that an unknown command is reported."""
        assert main.run(["-c", config_path, "frobnicate", "user"]) == 1
        assert "Unknown request: frobnicate user" in capsys.readouterr().err

    def test_unsupported_entity_command(self, config_path):
        """Test that a command unsupported for the entity is refused."""
        assert main.run(["-c", config_path, "modify", "coordinator", "Names=root"]) == 1

    def test_bad_configuration(self, tmp_path):
        """Test that an invalid configuration gives exit status 1."""
        path = tmp_path / "bad.yaml"
        path.write_text("log_level: LOUD\n", encoding="UTF-8")

        assert main.run(["-c", str(path), "list", "user"]) == 1

    def test_given_client(self, config_path):
        """Test that a given client is used instead of the configured one."""
        client = mock.Mock()
        client.query_users.return_value = []

        assert main.run(["-c", config_path, "list", "user"], client=client) == 0
        client.query_users.assert_called_once()

    def test_unexpected_error(self, config_path):
        """Test that an unexpected error gives exit status 1."""
        client = mock.Mock()
        client.query_users.side_effect = KeyError("boom")

        assert main.run(["-c", config_path, "list", "user"], client=client) == 1


class TestMain:
    """Test cases for the console entrypoint."""

    def test_exit_status(self):
        """Test that the exit status of the command is passed to sys.exit."""
        with mock.patch.object(main, "run", return_value=1), pytest.raises(SystemExit) as exit_:
            main.main()

        assert exit_.value.code == 1
