import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from messagely.config import load_settings
from messagely.credentials import CredentialStore
from messagely.database import Database
from messagely.errors import MessagelyError
from messagely.users import UserService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a messagely user")
    parser.add_argument("username", help="Unique username used to log in")
    parser.add_argument("first_name", help="First name shown to other users")
    parser.add_argument("last_name", help="Last name shown to other users")
    parser.add_argument("phone", help="Contact phone number")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration (defaults to MESSAGELY_CONFIG or config/messagely.yaml)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if not password:
            print("Password must not be empty.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    settings = load_settings(args.config, require_secret=False)
    password = prompt_for_password()

    database = Database(settings.database_path)
    database.initialize()
    users = UserService(database, CredentialStore.from_settings(settings))

    try:
        user = users.register(
            {
                "username": args.username,
                "password": password,
                "first_name": args.first_name,
                "last_name": args.last_name,
                "phone": args.phone,
            }
        )
    except MessagelyError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.username}: {user.first_name} {user.last_name} <{user.phone}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
