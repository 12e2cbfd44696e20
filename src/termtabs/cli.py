"""Command-line interface for termtabs.

Provides the main entry point for provisioning the client identity,
probing the local terminal server through a full session lifecycle, and
managing the preferred terminal URL.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="termtabs",
        description="Session lifecycle tools for a tabbed web terminal",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/termtabs.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    identity_parser = subparsers.add_parser(
        "identity", help="Provision the client identity and export its certificate",
    )
    identity_parser.add_argument(
        "--output", type=Path, default=None,
        help="Where to write the PEM certificate (default: <data_dir>/ca.crt)",
    )

    probe_parser = subparsers.add_parser(
        "probe", help="Open one session against the terminal server and wait for it to load",
    )
    probe_parser.add_argument(
        "--url", type=str, default=None,
        help="Terminal URL (default: the stored preference)",
    )

    url_parser = subparsers.add_parser("url", help="Show or change the preferred terminal URL")
    url_group = url_parser.add_mutually_exclusive_group()
    url_group.add_argument("--set", dest="new_url", type=str, default=None, help="Store a new URL")
    url_group.add_argument("--reset", action="store_true", help="Forget the stored URL")

    return parser.parse_args(argv)


def _identity_store(settings):
    from termtabs.identity.file_store import FileKeyStore
    from termtabs.identity.store import IdentityStore

    ident = settings.identity
    return IdentityStore(
        FileKeyStore(ident.keystore_dir),
        alias=ident.alias,
        common_name=ident.common_name,
        validity=timedelta(days=ident.validity_days),
    )


def _preferences(settings):
    from termtabs.config.preferences import UrlPreferences

    return UrlPreferences(
        settings.identity.preferences_path,
        default_url=settings.session.default_url,
    )


def _provision(settings, output: Path | None) -> int:
    """Create or load the identity and write the certificate file."""
    from termtabs.errors import IdentityProvisioningError

    store = _identity_store(settings)
    try:
        identity = store.get_or_create_identity()
        path = store.write_certificate(identity, output or settings.identity.export_path)
    except IdentityProvisioningError as e:
        logger.error("Identity provisioning failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Alias:       {identity.alias}")
    print(f"Valid:       {identity.not_before.isoformat()} .. {identity.not_after.isoformat()}")
    print(f"Fingerprint: {identity.fingerprint}")
    print(f"Certificate: {path}")
    return 0


async def _probe(settings, url: str) -> int:
    """Drive a single session until it loads, fails, or times out."""
    from termtabs.domain.models import Session
    from termtabs.session.controller import SessionListener
    from termtabs.session.probe import HttpProbeSurface
    from termtabs.session.registry import SessionRegistry
    from termtabs.session.trust import LoopbackTrustPolicy

    trust = LoopbackTrustPolicy(_identity_store(settings))
    done = asyncio.Event()
    outcome: dict[str, object] = {}

    class _Listener(SessionListener):
        def on_loaded(self, session: Session) -> None:
            outcome["loaded"] = session
            done.set()

        def on_error(self, session: Session, error) -> None:
            outcome["error"] = error
            done.set()

    def _fatal(session: Session, error: Exception) -> None:
        outcome["error"] = error
        done.set()

    registry = SessionRegistry(
        lambda tab_id: HttpProbeSurface(trust, request_timeout=settings.probe.request_timeout),
        trust,
        timeout=settings.session.timeout,
        listener=_Listener(),
        fatal_handler=_fatal,
    )
    session = registry.open()
    registry.controller(session.tab_id).request_load(url)
    try:
        await done.wait()
    finally:
        registry.close_all()

    if "loaded" in outcome:
        print(f"Loaded {url} after {session.attempts} attempt(s)")
        if session.title:
            print(f"Title: {session.title}")
        return 0
    error = outcome["error"]
    print(f"Failed: {type(error).__name__}: {error}", file=sys.stderr)
    return 1


def _url(settings, args) -> int:
    prefs = _preferences(settings)
    if args.new_url:
        prefs.url = args.new_url
    elif args.reset:
        prefs.reset()
    print(prefs.url)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the termtabs CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from termtabs.config.settings import load_settings
    from termtabs.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "identity":
        logger.info("Provisioning client identity")
        sys.exit(_provision(settings, args.output))

    elif args.command == "probe":
        url = args.url or _preferences(settings).url
        logger.info("Probing terminal server at %s", url)
        sys.exit(asyncio.run(_probe(settings, url)))

    elif args.command == "url":
        sys.exit(_url(settings, args))


if __name__ == "__main__":
    main()
