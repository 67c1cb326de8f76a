"""
Command line check of a directory login.

Usage:
    python -m dirauth jsmith
    echo "$PASSWORD" | python -m dirauth jsmith --password-stdin

Prints the resulting identity (roles, attributes, resolved groups) as JSON.
Exit codes: 0 authenticated, 1 refused, 2 directory unreachable.
"""

import argparse
import getpass
import json
import logging
import sys
from typing import List, Optional

from dirauth.authenticator import Authenticator
from dirauth.config import Settings
from dirauth.config import settings as default_settings
from dirauth.exceptions import AuthenticationError, DirectoryCommunicationError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REFUSED = 1
EXIT_DIRECTORY_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dirauth",
        description="Authenticate a user against the directory and print the resolved identity.",
    )
    parser.add_argument("username", help="Login name (jsmith, jsmith@corp.local or CORP\\jsmith)")
    parser.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from stdin instead of prompting",
    )
    return parser


def _read_password(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    return getpass.getpass("Password: ")


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings or default_settings

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    authenticator = Authenticator.from_settings(settings)
    password = _read_password(args.password_stdin)

    try:
        identity = authenticator.authenticate(args.username, password)
    except AuthenticationError as e:
        reason = e.reason.value if e.reason else "unknown"
        logger.error(f"[AUTH] {args.username} refused ({reason}): {e}")
        print(json.dumps({"success": False, "reason": reason, "error": str(e)}))
        return EXIT_REFUSED
    except DirectoryCommunicationError as e:
        logger.error(f"[AUTH] Directory error for {args.username}: {e}")
        print(json.dumps({"success": False, "reason": e.reason.value, "error": str(e)}))
        return EXIT_DIRECTORY_ERROR

    print(json.dumps({"success": True, **identity.to_dict()}, indent=2, default=str))
    return EXIT_OK
