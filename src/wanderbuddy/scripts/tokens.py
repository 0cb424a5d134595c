# src/wanderbuddy/scripts/tokens.py
"""
Mint a development access token for a user identity.

Usage:
    python -m wanderbuddy.scripts.tokens <user-id> [--minutes N]
"""

import argparse
from datetime import timedelta

from wanderbuddy.core.security import create_access_token
from wanderbuddy.core.settings import settings


def main(argv: list[str] | None = None) -> str:
    parser = argparse.ArgumentParser(description="Mint a WanderBuddy access token")
    parser.add_argument("user_id", help="Identity placed in the token's sub claim")
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.access_token_expire_minutes,
        help="Token lifetime in minutes",
    )
    args = parser.parse_args(argv)

    settings.access_token_expire_minutes = args.minutes
    token = create_access_token(args.user_id)
    print(token)
    print(f"Expires in {timedelta(minutes=args.minutes)}")
    return token


if __name__ == "__main__":
    main()
