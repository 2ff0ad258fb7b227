"""Command-line interface for the rehearsal planner service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

import httpx

from rehearsal_planner.config import Settings, load_settings
from rehearsal_planner.engine import RehearsalEngine
from rehearsal_planner.errors import PlannerError
from rehearsal_planner.passwords import MIN_PASSWORD_LENGTH, password_policy_violation

logger = logging.getLogger("rehearsal_planner.main")

_DEFAULT_SERVICE_URL = "http://localhost:3001"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rehearsal planner utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the planner document store")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: REHEARSAL_HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: REHEARSAL_PORT or 3001)",
    )

    setup_parser = subparsers.add_parser("setup", help="Create the first administrator account")
    setup_parser.add_argument("username", help="Username for the administrator")

    create_parser = subparsers.add_parser("create-user", help="Add a member account")
    create_parser.add_argument("username", help="Unique, case-sensitive username")
    create_parser.add_argument("--admin", action="store_true", help="Grant the admin role")

    subparsers.add_parser("list-users", help="List registered accounts")
    subparsers.add_parser("list-rehearsals", help="List rehearsals and their vote tallies")

    status_parser = subparsers.add_parser("status", help="Query a running service for its health")
    status_parser.add_argument(
        "--service-url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the running service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {
        "serve",
        "init-db",
        "setup",
        "create-user",
        "list-users",
        "list-rehearsals",
        "status",
    }

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _build_engine(settings: Settings) -> RehearsalEngine:
    from rehearsal_planner.application import build_engine

    engine = build_engine(settings)
    logger.info("Planner document at %s", settings.database_path)
    return engine


def _serve(settings: Settings, *, host: str | None, port: int | None) -> None:
    from rehearsal_planner.application import create_application
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting rehearsal planner API on http://%s:%s", bind_host, bind_port)

    app = create_application(settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {MIN_PASSWORD_LENGTH} characters): ")
        problem = password_policy_violation(password)
        if problem is not None:
            print(f"{problem}. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _setup(engine: RehearsalEngine, username: str) -> int:
    if engine.setup_status():
        print("Setup has already been completed.")
        return 1
    password = _prompt_for_password()
    if password is None:
        print("Aborted setup.")
        return 1
    try:
        user = engine.setup(username, password)
    except PlannerError as exc:
        print(f"Setup failed: {exc}")
        return 1
    print(f"Created administrator {user.username} ({user.id})")
    return 0


def _create_user(engine: RehearsalEngine, username: str, *, admin: bool) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return 1
    try:
        user = engine.create_user(username, password, "admin" if admin else "user")
    except PlannerError as exc:
        print(f"Failed to create user: {exc}")
        return 1
    print(f"Created {user.role.value} {user.username} ({user.id})")
    return 0


def _list_users(engine: RehearsalEngine) -> int:
    users = engine.list_users()
    if not users:
        print("No users are currently registered.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<36}  {'Username':<24}  {'Role':<6}  Created")
    print("-" * 92)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:<36}  {user.username:<24}  {user.role.value:<6}  {created}")
    return 0


def _list_rehearsals(engine: RehearsalEngine) -> int:
    from rehearsal_planner.tally import tally

    rehearsals = engine.list_rehearsals()
    if not rehearsals:
        print("No rehearsals have been scheduled.")
        return 0

    for rehearsal in rehearsals:
        summary = tally(rehearsal)
        print(f"{rehearsal.title} [{rehearsal.state.value}] ({rehearsal.id})")
        for option in rehearsal.dates:
            marker = "*" if option.id == rehearsal.selected_date_id else " "
            when = option.starts_at.strftime("%Y-%m-%d %H:%M %Z")
            percent = summary.for_date(option.id).percent
            print(f"  {marker} {when}  {option.location or '-':<20}  {option.vote_count:>3} vote(s)  {percent:5.1f}%")
    return 0


def _check_service(service_url: str) -> int:
    endpoint = service_url.rstrip("/") + "/api/health"
    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact the planner service: {exc}")
        return 1

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    print(f"Service at {service_url} is healthy.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "status":
        return _check_service(args.service_url)

    settings = load_settings()

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0

    engine = _build_engine(settings)
    if args.command == "init-db":
        print("Planner store initialisation complete.")
        return 0
    if args.command == "setup":
        return _setup(engine, args.username)
    if args.command == "create-user":
        return _create_user(engine, args.username, admin=args.admin)
    if args.command == "list-users":
        return _list_users(engine)
    if args.command == "list-rehearsals":
        return _list_rehearsals(engine)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
