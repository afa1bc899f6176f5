#!/usr/bin/env python3
"""
Register agent accounts (and the superadmin) against a running Chatter server.

Usage:
    python scripts/register_users.py [OPTIONS]

Options:
    --base-url URL     Server base URL (default: http://localhost:8000)
    --prefix NAME      Agent username prefix (default: agent)
    --start N          First agent number (default: 1)
    --count N          Number of agents to register (default: 10)
    --password PW      Password for every account (default: $AGENT_PASSWORD or password123)
    --superadmin NAME  Also register this monitor account (default: superadmin; "" to skip)
    --delay SECS       Delay between registrations (default: 0.2)
"""

import argparse
import os
import sys
import time

import httpx

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_PASSWORD = os.environ.get("AGENT_PASSWORD", "password123")


def register_user(client: httpx.Client, username: str, password: str) -> dict:
    """POST /auth/register and return the response body. Raises on a non-2xx reply."""
    response = client.post("/auth/register", json={"username": username, "password": password})
    response.raise_for_status()
    return response.json()


def _error_text(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            return exc.response.json().get("error", exc.response.text)
        except ValueError:
            return exc.response.text
    return str(exc)


def register_all(
    client: httpx.Client, usernames: list[str], password: str, delay: float = 0.0
) -> tuple[list[dict], list[dict]]:
    """Register *usernames* one by one. Returns ``(successful, failed)``."""
    successful: list[dict] = []
    failed: list[dict] = []

    for i, username in enumerate(usernames):
        print(f"Registering user: {username}")
        try:
            body = register_user(client, username, password)
        except httpx.HTTPError as e:
            error = _error_text(e)
            print(f"  FAILED: {error}")
            failed.append({"username": username, "error": error})
        else:
            user_id = body["user"]["id"]
            print(f"  OK (id={user_id}, token={body['token'][:8]}...)")
            successful.append({"username": username, "user_id": user_id})

        if delay and i < len(usernames) - 1:
            time.sleep(delay)

    return successful, failed


def print_summary(successful: list[dict], failed: list[dict]) -> None:
    print("\n--- Registration Summary ---")
    print(f"  Successful: {len(successful)}")
    print(f"  Failed:     {len(failed)}")
    for user in successful:
        print(f"    + {user['username']} (id={user['user_id']})")
    for user in failed:
        print(f"    - {user['username']}: {user['error']}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Register agent users on a Chatter server")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--prefix", default="agent")
    parser.add_argument("--start", type=int, default=1)
    parser.add_argument("--count", type=int, default=10)
    parser.add_argument("--password", default=DEFAULT_PASSWORD)
    parser.add_argument("--superadmin", default="superadmin")
    parser.add_argument("--delay", type=float, default=0.2)
    args = parser.parse_args(argv)

    usernames = [f"{args.prefix}{n}" for n in range(args.start, args.start + args.count)]
    if args.superadmin:
        usernames.append(args.superadmin)

    print(f"Registering {len(usernames)} users at {args.base_url}")
    with httpx.Client(base_url=args.base_url, timeout=10.0) as client:
        successful, failed = register_all(client, usernames, args.password, args.delay)

    print_summary(successful, failed)
    return 1 if failed and not successful else 0


if __name__ == "__main__":
    sys.exit(main())
