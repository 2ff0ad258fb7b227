import argparse
import getpass
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rehearsal_planner.config import load_settings
from rehearsal_planner.database import open_store, resolve_database_path
from rehearsal_planner.engine import RehearsalEngine
from rehearsal_planner.errors import PlannerError
from rehearsal_planner.passwords import password_policy_violation


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a rehearsal planner account")
    parser.add_argument("username", help="Unique, case-sensitive login name")
    parser.add_argument(
        "--role",
        choices=("user", "admin"),
        default="user",
        help="Access level for the account (default: user)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the planner store (defaults to the configured database_path)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        problem = password_policy_violation(password)
        if problem is not None:
            print(f"{problem}.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    password = prompt_for_password()

    if args.db_path:
        db_path = resolve_database_path(args.db_path)
    else:
        db_path = load_settings().database_path
    store = open_store(db_path)
    store.initialize()
    engine = RehearsalEngine(store)

    try:
        user = engine.create_user(args.username, password, args.role)
    except PlannerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} {user.username} ({user.id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
