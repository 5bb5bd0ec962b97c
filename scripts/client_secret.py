#!/usr/bin/env python
"""Mint a Sign in with Apple client secret for manual testing (e.g. with curl)."""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apple_signin.clients import ClientAssertionSigner  # noqa: E402
from apple_signin.core.errors import AppleAuthError  # noqa: E402
from apple_signin.models import ClientIdentity  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--team-id", required=True, help="10 character Apple Team ID.")
    parser.add_argument("--client-id", required=True, help="Services ID, e.g. com.example.web.")
    parser.add_argument("--key-id", required=True, help="10 character key identifier.")
    parser.add_argument("--key-file", required=True, type=Path, help="Path to the AuthKey .p8 file.")
    parser.add_argument(
        "--lifetime-minutes",
        type=int,
        default=5,
        help="Validity of the secret in minutes (Apple allows up to six months).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        identity = ClientIdentity.create(
            team_id=args.team_id,
            client_id=args.client_id,
            key_id=args.key_id,
            private_key=str(args.key_file),
            key_format="file",
        )
        signer = ClientAssertionSigner(
            identity, lifetime=timedelta(minutes=args.lifetime_minutes)
        )
        assertion = signer.generate()
    except AppleAuthError as exc:
        print(f"Could not create client secret: {exc}", file=sys.stderr)
        return 1

    print(assertion.token)
    print(f"expires at {assertion.expires_at.isoformat()}", file=sys.stderr)
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
