"""Command-line helper for managing the principal directory.

This module serves as a CLI wrapper around davdir.core stores.
"""
from __future__ import annotations
import argparse
import json
import os
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from davdir.core import (
    DISPLAYNAME,
    EMAIL_ADDRESS,
    DigestCredentials,
    PrincipalNotFoundError,
    PrincipalStore,
    SearchTest,
    create_engine_for_url,
    default_field_map,
    init_schema,
    parse_extra_fields,
)
from scripts import audit


def _parse_props(pairs: list[str]) -> dict[str, str]:
    """Parse NAME=VALUE arguments (NAME may be a Clark-notation property)."""
    props = {}
    for pair in pairs:
        # Skip over the {namespace} before looking for '='
        close = pair.find("}") if pair.startswith("{") else -1
        local, sep, value = pair[close + 1:].partition("=")
        name = pair[:close + 1] + local
        if not sep or not local:
            raise ValueError(f"Invalid property '{pair}', expected NAME=VALUE")
        props[name] = value
    return props


def _print_json(value) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    default_prefix = os.environ.get("DAVDIR_PRINCIPAL_PREFIX", "principals/users").strip().rstrip("/")

    parser = argparse.ArgumentParser(description="WebDAV principal directory helper")
    parser.add_argument("--database-url", default=os.environ.get("DATABASE_URL", "sqlite:///.runtime/davdir.db"))
    parser.add_argument("--principals-table", default=os.environ.get("DAVDIR_PRINCIPALS_TABLE", "principals"))
    parser.add_argument("--groupmembers-table", default=os.environ.get("DAVDIR_GROUPMEMBERS_TABLE", "groupmembers"))
    parser.add_argument("--users-table", default=os.environ.get("DAVDIR_USERS_TABLE", "users"))
    parser.add_argument("--realm-column", default=os.environ.get("DAVDIR_USERS_REALM_COLUMN", ""))
    parser.add_argument("--extra-fields", default=os.environ.get("DAVDIR_EXTRA_FIELDS", ""),
                        help="Extra recognized properties, '{ns}name=column,...'")
    parser.add_argument("--operator", default="cli",
                        help="Operator identifier for audit logs (default: cli)")

    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init-db")

    sc = sub.add_parser("create-principal")
    sc.add_argument("--uri", required=True)
    sc.add_argument("--displayname")
    sc.add_argument("--email")
    sc.add_argument("--prop", action="append", default=[], metavar="NAME=VALUE")

    su = sub.add_parser("update-principal")
    su.add_argument("--uri", required=True)
    su.add_argument("--prop", action="append", default=[], metavar="NAME=VALUE", required=True)

    sl = sub.add_parser("list")
    sl.add_argument("--prefix", default=default_prefix)

    ss = sub.add_parser("show")
    ss.add_argument("--uri", required=True)

    sq = sub.add_parser("search")
    sq.add_argument("--prefix", default=default_prefix)
    sq.add_argument("--prop", action="append", default=[], metavar="NAME=VALUE", required=True)
    sq.add_argument("--anyof", action="store_true")

    sr = sub.add_parser("resolve")
    sr.add_argument("--uri", required=True, help="External URI, e.g. mailto:alice@example.com")
    sr.add_argument("--prefix", default=default_prefix)

    sm = sub.add_parser("set-members")
    sm.add_argument("--uri", required=True)
    sm.add_argument("--member", action="append", default=[])

    smb = sub.add_parser("members")
    smb.add_argument("--uri", required=True)

    sms = sub.add_parser("memberships")
    sms.add_argument("--uri", required=True)

    sd = sub.add_parser("set-digest")
    sd.add_argument("--username", required=True)
    sd.add_argument("--digest", required=True, help="Precomputed HA1 digest")
    sd.add_argument("--realm", default="SabreDAV")

    sg = sub.add_parser("digest")
    sg.add_argument("--username", required=True)
    sg.add_argument("--realm", default="SabreDAV")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return

    try:
        field_map = default_field_map()
        for prop, column in parse_extra_fields(args.extra_fields).items():
            field_map.register(prop, column)
    except ValueError as e:
        parser.error(str(e))

    if args.database_url.startswith("sqlite:///.runtime/"):
        Path(".runtime").mkdir(parents=True, exist_ok=True)
    engine = create_engine_for_url(args.database_url)

    store = PrincipalStore(
        engine,
        field_map=field_map,
        principals_table=args.principals_table,
        group_members_table=args.groupmembers_table,
    )
    credentials = DigestCredentials(engine, table_name=args.users_table, realm_column=args.realm_column or None)

    try:
        _dispatch(args, parser, store, credentials, field_map)
    except PrincipalNotFoundError as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        sys.exit(1)
    except SQLAlchemyError as e:
        print(f"[{args.cmd}] Database error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        engine.dispose()


def _dispatch(args, parser, store: PrincipalStore, credentials: DigestCredentials, field_map) -> None:
    if args.cmd == "init-db":
        metadata = init_schema(
            store.engine,
            field_map=field_map,
            principals_table=args.principals_table,
            group_members_table=args.groupmembers_table,
            users_table=args.users_table,
            users_realm_column=args.realm_column or None,
        )
        print(f"[init-db] Tables ready: {', '.join(sorted(metadata.tables))}")
    elif args.cmd == "create-principal":
        props = _parse_props(args.prop)
        if args.displayname is not None:
            props[DISPLAYNAME] = args.displayname
        if args.email is not None:
            props[EMAIL_ADDRESS] = args.email
        try:
            unhandled = store.create_principal(args.uri, props)
        except IntegrityError:
            print(f"[create-principal] Error: principal '{args.uri}' already exists", file=sys.stderr)
            audit.log_directory_event(
                "create_principal", args.uri, operator=args.operator,
                details={"error": "already exists"}, success=False,
            )
            sys.exit(1)
        audit.log_directory_event(
            "create_principal", args.uri, operator=args.operator,
            details={"properties": sorted(set(props) - set(unhandled))},
        )
        for prop in unhandled:
            print(f"[create-principal] Warning: property {prop} not supported, ignored", file=sys.stderr)
        print(f"[create-principal] Principal '{args.uri}' created")
    elif args.cmd == "update-principal":
        if store.get_principal_by_path(args.uri) is None:
            raise PrincipalNotFoundError(args.uri)
        props = _parse_props(args.prop)
        unhandled = store.update_principal(args.uri, props)
        for prop in unhandled:
            print(f"[update-principal] Warning: property {prop} not supported, ignored", file=sys.stderr)
        handled = sorted(set(props) - set(unhandled))
        if handled:
            audit.log_directory_event(
                "update_principal", args.uri, operator=args.operator, details={"properties": handled},
            )
        print(f"[update-principal] Updated {len(handled)} propert{'y' if len(handled) == 1 else 'ies'}")
    elif args.cmd == "list":
        _print_json(store.get_principals_by_prefix(args.prefix))
    elif args.cmd == "show":
        principal = store.get_principal_by_path(args.uri)
        if principal is None:
            print(f"[show] Principal '{args.uri}' not found", file=sys.stderr)
            sys.exit(1)
        _print_json(principal)
    elif args.cmd == "search":
        test = SearchTest.ANYOF if args.anyof else SearchTest.ALLOF
        _print_json(store.search_principals(args.prefix, _parse_props(args.prop), test))
    elif args.cmd == "resolve":
        found = store.find_by_uri(args.uri, args.prefix)
        if found is None:
            print(f"[resolve] No principal for '{args.uri}'", file=sys.stderr)
            sys.exit(1)
        print(found)
    elif args.cmd == "set-members":
        try:
            stored = store.set_group_member_set(args.uri, args.member)
        except PrincipalNotFoundError as e:
            audit.log_directory_event(
                "set_group_members", args.uri, operator=args.operator,
                details={"members": args.member, "error": str(e)}, success=False,
            )
            raise
        skipped = sorted(set(args.member) - set(stored))
        audit.log_directory_event(
            "set_group_members", args.uri, operator=args.operator,
            details={"members": stored, "skipped": skipped},
        )
        for uri in skipped:
            print(f"[set-members] Warning: '{uri}' is not a known principal, skipped", file=sys.stderr)
        print(f"[set-members] '{args.uri}' now has {len(stored)} member(s)")
    elif args.cmd == "members":
        _print_json(store.get_group_member_set(args.uri))
    elif args.cmd == "memberships":
        _print_json(store.get_group_membership(args.uri))
    elif args.cmd == "set-digest":
        credentials.set_digest_hash(args.realm, args.username, args.digest)
        audit.log_directory_event(
            "set_digest", args.username, operator=args.operator, details={"realm": args.realm},
        )
        print(f"[set-digest] Digest stored for '{args.username}'")
    elif args.cmd == "digest":
        digest = credentials.get_digest_hash(args.realm, args.username)
        if digest is None:
            print(f"[digest] No digest for '{args.username}'", file=sys.stderr)
            sys.exit(1)
        print(digest)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
