"""Check that the Apple credentials in a ``.env`` file can sign client secrets.

``check`` loads the settings and signs a throwaway client secret with the
configured key. ``record`` does the same and snapshots the signing identity
(team id, client id, key id and public-key fingerprint) as JSON. ``verify``
compares a fresh load against that snapshot, so a rotated or swapped key shows
up on the next deploy instead of as failed sign-ins::

    python -m scripts.check_env record --env-file /srv/apple-signin/.env \
        --snapshot /srv/apple-signin/apple-identity.json
    python -m scripts.check_env verify --env-file /srv/apple-signin/.env \
        --snapshot /srv/apple-signin/apple-identity.json

The private key itself is never printed or written.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass
from pathlib import Path

from pydantic import ValidationError

from apple_signin.clients import ClientAssertionSigner
from apple_signin.core.config import AppSettings, _load_env_file
from apple_signin.core.errors import ConfigurationError, KeyLoadError, SigningError

EXIT_OK = 0
EXIT_INVALID_SETTINGS = 2
EXIT_IDENTITY_CHANGED = 3
EXIT_UNUSABLE_KEY = 4
EXIT_RUNTIME_ERROR = 5


@dataclass(frozen=True)
class SigningIdentity:
    team_id: str
    client_id: str
    key_id: str
    key_fingerprint: str

    def changes_from(self, recorded: dict) -> list[str]:
        current = asdict(self)
        return [name for name in current if recorded.get(name) != current[name]]


def load_identity(env_file: Path) -> SigningIdentity:
    """Load settings from ``env_file`` and prove the key can sign."""
    if not env_file.exists():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    apple = AppSettings().apple  # type: ignore[call-arg]
    apple.to_client_config()
    signer = ClientAssertionSigner(apple.to_identity())
    assertion = signer.generate()
    print(f"Signed a test client secret with key {assertion.key_id}.")
    return SigningIdentity(
        team_id=apple.team_id,
        client_id=apple.client_id,
        key_id=signer.key_id,
        key_fingerprint=signer.public_key_fingerprint,
    )


def _record(identity: SigningIdentity, snapshot: Path) -> int:
    snapshot.write_text(json.dumps(asdict(identity), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    print(f"Recorded signing identity for key {identity.key_id} to {snapshot}")
    return EXIT_OK


def _verify(identity: SigningIdentity, snapshot: Path) -> int:
    if not snapshot.exists():
        print(f"No snapshot at {snapshot}; run 'record' first.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    try:
        recorded = json.loads(snapshot.read_text(encoding="utf-8"))
    except ValueError:
        print(f"Snapshot {snapshot} is not valid JSON.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    changed = identity.changes_from(recorded)
    if not changed:
        print("Apple signing identity unchanged.")
        return EXIT_OK

    current = asdict(identity)
    for name in changed:
        print(f"  {name}: {recorded.get(name)} -> {current[name]}", file=sys.stderr)
    if "key_id" in changed or "key_fingerprint" in changed:
        print("The signing key was rotated; make sure Apple lists the new key id.", file=sys.stderr)
    return EXIT_IDENTITY_CHANGED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=["check", "record", "verify"])
    parser.add_argument("--env-file", type=Path, default=Path(".env"))
    parser.add_argument("--snapshot", type=Path, help="JSON file for record/verify.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command != "check" and args.snapshot is None:
        parser.error(f"{args.command} requires --snapshot")

    try:
        identity = load_identity(args.env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        missing = ", ".join(".".join(map(str, error["loc"])) for error in exc.errors())
        print(f"Invalid or missing settings: {missing}", file=sys.stderr)
        return EXIT_INVALID_SETTINGS
    except ConfigurationError as exc:
        print(f"Invalid Apple settings: {exc}", file=sys.stderr)
        return EXIT_INVALID_SETTINGS
    except (KeyLoadError, SigningError) as exc:
        print(f"Apple private key is unusable: {exc}", file=sys.stderr)
        return EXIT_UNUSABLE_KEY

    if args.command == "record":
        return _record(identity, args.snapshot)
    if args.command == "verify":
        return _verify(identity, args.snapshot)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
