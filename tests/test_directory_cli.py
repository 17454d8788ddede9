import json

import pytest

import scripts.directory as directory
from scripts import audit


@pytest.fixture()
def cli(database_url, capsys):
    """Run the CLI against a fresh database; returns (stdout, stderr)."""

    def run(*args):
        directory.main(["--database-url", database_url, *args])
        return capsys.readouterr()

    run("init-db")
    return run


def _fails(cli, *args):
    with pytest.raises(SystemExit) as exc_info:
        cli(*args)
    assert exc_info.value.code != 0


def test_init_db_reports_tables(database_url, capsys):
    directory.main(["--database-url", database_url, "init-db"])
    out = capsys.readouterr().out
    assert "[init-db] Tables ready: groupmembers, principals, users" in out


def test_no_command_prints_help(capsys):
    directory.main([])
    assert "usage:" in capsys.readouterr().out


def test_create_show_and_list(cli):
    out = cli(
        "create-principal", "--uri", "principals/users/alice",
        "--displayname", "Alice", "--email", "alice@example.com",
    ).out
    assert "Principal 'principals/users/alice' created" in out

    shown = json.loads(cli("show", "--uri", "principals/users/alice").out)
    assert shown["{DAV:}displayname"] == "Alice"
    assert shown["{http://sabredav.org/ns}email-address"] == "alice@example.com"

    listed = json.loads(cli("list").out)
    assert [p["uri"] for p in listed] == ["principals/users/alice"]


def test_create_with_clark_notation_prop(cli):
    result = cli(
        "create-principal", "--uri", "principals/users/bob",
        "--prop", "{DAV:}displayname=Bob=Builder", "--prop", "{DAV:}getetag=abc",
    )
    assert "{DAV:}getetag not supported" in result.err
    shown = json.loads(cli("show", "--uri", "principals/users/bob").out)
    assert shown["{DAV:}displayname"] == "Bob=Builder"


def test_create_duplicate_fails(cli):
    cli("create-principal", "--uri", "principals/users/alice")
    _fails(cli, "create-principal", "--uri", "principals/users/alice")

    events = [json.loads(line) for line in audit.AUDIT_LOG_FILE.read_text().splitlines()]
    assert [e["success"] for e in events] == [True, False]
    assert events[0]["operator"] == "cli"


def test_update_principal(cli):
    cli("create-principal", "--uri", "principals/users/carol", "--displayname", "Carol")
    out = cli("update-principal", "--uri", "principals/users/carol", "--prop", "{DAV:}displayname=Caroline").out
    assert "Updated 1 property" in out
    shown = json.loads(cli("show", "--uri", "principals/users/carol").out)
    assert shown["{DAV:}displayname"] == "Caroline"


def test_update_missing_principal_fails(cli, capsys):
    _fails(cli, "update-principal", "--uri", "principals/users/nobody", "--prop", "{DAV:}displayname=X")
    assert "Principal not found" in capsys.readouterr().err


def test_malformed_prop_fails(cli):
    _fails(cli, "create-principal", "--uri", "principals/users/x", "--prop", "{DAV:}displayname")


def test_search_and_resolve(cli):
    cli("create-principal", "--uri", "principals/users/alice", "--displayname", "Alice Smith",
        "--email", "alice@example.com")
    cli("create-principal", "--uri", "principals/users/bob", "--displayname", "Bob",
        "--email", "bob@example.org")

    found = json.loads(cli("search", "--prop", "{DAV:}displayname=smith").out)
    assert found == ["principals/users/alice"]

    found = json.loads(cli(
        "search", "--anyof",
        "--prop", "{DAV:}displayname=smith",
        "--prop", "{http://sabredav.org/ns}email-address=example.org",
    ).out)
    assert found == ["principals/users/alice", "principals/users/bob"]

    assert cli("resolve", "--uri", "mailto:BOB@example.org").out.strip() == "principals/users/bob"
    _fails(cli, "resolve", "--uri", "mailto:nobody@example.org")


def test_group_members(cli):
    for uri in ("principals/groups/admins", "principals/users/alice", "principals/users/bob"):
        cli("create-principal", "--uri", uri)

    result = cli(
        "set-members", "--uri", "principals/groups/admins",
        "--member", "principals/users/alice", "--member", "principals/users/ghost",
    )
    assert "now has 1 member(s)" in result.out
    assert "'principals/users/ghost' is not a known principal" in result.err

    assert json.loads(cli("members", "--uri", "principals/groups/admins").out) == ["principals/users/alice"]
    assert json.loads(cli("memberships", "--uri", "principals/users/alice").out) == ["principals/groups/admins"]


def test_set_members_of_unknown_group_fails(cli, capsys):
    _fails(cli, "set-members", "--uri", "principals/groups/nobody", "--member", "principals/users/alice")
    assert "[set-members] Error: Principal not found" in capsys.readouterr().err
    event = json.loads(audit.AUDIT_LOG_FILE.read_text().splitlines()[-1])
    assert event["event_type"] == "set_group_members"
    assert event["success"] is False


def test_digest_roundtrip(cli):
    cli("set-digest", "--username", "alice", "--digest", "87fd274b7b6c01e48d7c2f965da8ddf7")
    out = cli("digest", "--username", "alice", "--realm", "Anything").out
    assert out.strip() == "87fd274b7b6c01e48d7c2f965da8ddf7"
    _fails(cli, "digest", "--username", "nobody")


def test_extra_fields(database_url, capsys):
    extra = ["--extra-fields", "{urn:example}phone=phone"]
    directory.main(["--database-url", database_url, *extra, "init-db"])
    directory.main([
        "--database-url", database_url, *extra,
        "create-principal", "--uri", "principals/users/dan", "--prop", "{urn:example}phone=555",
    ])
    capsys.readouterr()
    directory.main(["--database-url", database_url, *extra, "show", "--uri", "principals/users/dan"])
    assert json.loads(capsys.readouterr().out)["{urn:example}phone"] == "555"


def test_invalid_extra_fields_is_usage_error(database_url):
    with pytest.raises(SystemExit) as exc_info:
        directory.main(["--database-url", database_url, "--extra-fields", "phone", "list"])
    assert exc_info.value.code == 2


def test_prefix_defaults_to_configured_collection(cli, monkeypatch):
    cli("create-principal", "--uri", "principals/users/alice", "--email", "team@example.com")
    cli("create-principal", "--uri", "principals/groups/admins",
        "--displayname", "Admins", "--email", "team@example.com")
    monkeypatch.setenv("DAVDIR_PRINCIPAL_PREFIX", "principals/groups/")

    assert [p["uri"] for p in json.loads(cli("list").out)] == ["principals/groups/admins"]
    assert json.loads(cli("search", "--prop", "{DAV:}displayname=adm").out) == ["principals/groups/admins"]
    assert cli("resolve", "--uri", "mailto:team@example.com").out.strip() == "principals/groups/admins"
