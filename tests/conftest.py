import io
from unittest import mock

import pytest

from acctmgr.backends.file_backend.client import FileClient
from acctmgr.backends.structures import Association, User
from acctmgr.commands import CommandContext, Diagnostics
from acctmgr.common.structures import AcctmgrConfiguration


def build_client() -> FileClient:
    """In-memory database with two clusters and three accounts.

    a3 exists on c1 only. olduser belongs to a1 and a2 on c1, other to a1 on c1.
    """
    client = FileClient()
    client.add_cluster("c1")
    client.add_cluster("c2")
    client.add_account("a1")
    client.add_account("a2")
    client.add_account("a3", clusters=["c1"])
    client.create_users(
        [
            User(
                name="olduser",
                default_account="a1",
                associations=[
                    Association(user="olduser", account="a1", cluster="c1"),
                    Association(user="olduser", account="a2", cluster="c1"),
                ],
            ),
            User(
                name="other",
                default_account="a1",
                associations=[Association(user="other", account="a1", cluster="c1")],
            ),
        ]
    )
    client.commit(True)
    return client


@pytest.fixture
def client() -> FileClient:
    return build_client()


@pytest.fixture
def configuration() -> AcctmgrConfiguration:
    return AcctmgrConfiguration(notice_delay_seconds=60)


@pytest.fixture
def context(client, configuration) -> CommandContext:
    return CommandContext(
        client=client,
        configuration=configuration,
        diagnostics=Diagnostics(stream=io.StringIO()),
        confirm=mock.Mock(return_value=True),
        resolve_uid=mock.Mock(return_value=1000),
    )
