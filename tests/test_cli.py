import argparse

import pytest

from resawod import cli
from resawod.cli import _format_table, _parse_args, resolve_user
from resawod.config import AppConfig, BookingConfig, Settings
from resawod.errors import ConfigError, TransientError


def test_resolve_user_defaults_to_first_user(booking_config):
    user = resolve_user(booking_config, None, None)
    assert user.login == "alice@example.com"
    assert user.name == "Alice"


def test_resolve_user_with_explicit_credentials(booking_config):
    user = resolve_user(booking_config, "bob@example.com", "pw2")
    assert (user.name, user.login, user.password) == ("bob@example.com", "bob@example.com", "pw2")


def test_resolve_user_without_users_needs_flags():
    config = BookingConfig(app=AppConfig(application_id="1", category_activity_id="2"))
    with pytest.raises(ConfigError):
        resolve_user(config, "bob", None)


def test_parse_book_args():
    args = _parse_args(["-c", "my.toml", "book", "tuesday,friday", "--dry-run"])
    assert args.command == "book"
    assert args.config == "my.toml"
    assert args.days == "tuesday,friday"
    assert args.dry_run


def test_format_table():
    table = _format_table([["a", "bbb"]], ["H1", "H2"])
    assert table.splitlines() == ["H1 | H2 ", "---+----", "a  | bbb"]


class FakeDiscoverClient:
    instances = []

    def __init__(self, application_id, category_activity_id, *, api_base, timeout):
        self.application_id = application_id
        self.category_activity_id = category_activity_id
        self.claims = {}
        self.categories = [{"id_category_activity": 3, "name": "CrossFit"}, {"id": 4}]
        self.categories_error = None
        self.closed = False
        FakeDiscoverClient.instances.append(self)

    async def login(self, login, password):
        self.claims = {"id_application": 12, "id_user": 777, "username": login}

    async def get_categories(self):
        if self.categories_error:
            raise self.categories_error
        return self.categories

    async def close(self):
        self.closed = True


@pytest.fixture
def discover_client(monkeypatch):
    FakeDiscoverClient.instances = []
    monkeypatch.setattr(cli, "NubappClient", FakeDiscoverClient)
    return FakeDiscoverClient


def test_parse_discover_args():
    args = _parse_args(["discover", "-u", "bob", "--application-id", "99"])
    assert (args.command, args.user, args.application_id) == ("discover", "bob", "99")
    assert cli.COMMANDS["discover"] is cli.run_discover


@pytest.mark.asyncio
async def test_discover_prints_claims_and_categories(booking_config, discover_client, capsys):
    args = argparse.Namespace(user=None, password=None, application_id=None, verbose=False)

    await cli.run_discover(args, Settings(), booking_config)

    out = capsys.readouterr().out
    assert "application_id: 12" in out
    assert "user_id: 777" in out
    assert "username: alice@example.com" in out
    assert "3  | CrossFit" in out
    assert "4  | ?" in out
    client = discover_client.instances[0]
    assert client.application_id == "1"
    assert client.closed


@pytest.mark.asyncio
async def test_discover_reports_category_failure(booking_config, discover_client, capsys, monkeypatch):
    original_init = FakeDiscoverClient.__init__

    def failing_init(self, *args, **kwargs):
        original_init(self, *args, **kwargs)
        self.categories_error = TransientError("boom")

    monkeypatch.setattr(FakeDiscoverClient, "__init__", failing_init)
    args = argparse.Namespace(user=None, password=None, application_id="99", verbose=False)

    await cli.run_discover(args, Settings(), booking_config)

    out = capsys.readouterr().out
    assert "Could not fetch categories: boom" in out
    assert discover_client.instances[0].application_id == "99"
    assert discover_client.instances[0].closed
