"""
sheetsync.main
~~~~~~~~~~~~~~

This module implements the system's main script.
"""

import argparse
import os
import sys
from logging import getLogger, error, info, INFO

from dotenv import load_dotenv

from sheetsync.clients.hubspot import HubSpotClient
from sheetsync.clients.sheets import SheetsClient
from sheetsync.config import Settings
from sheetsync.errors import ConfigError, NotAuthenticated, TokenError
from sheetsync.ratelimit import RateLimiter
from sheetsync.store import FileCredentialStore
from sheetsync.sync import sync_all
from sheetsync.tokens import (
    TokenManager,
    authorization_url,
    error_message,
    generate_state,
    handle_callback,
)
from sheetsync.utils import format_summary

RECONNECT = "Not authorized. Run `python -m sheetsync authorize` to connect HubSpot."


def state_path(settings: Settings) -> str:
    return f"{settings.token_path}.state"


def authorize(settings: Settings) -> str:
    """ Build the install URL and remember its state for `callback`. """
    state: str = generate_state()
    with open(state_path(settings), "w") as f:
        f.write(state)
    return authorization_url(settings.client_id, settings.scopes, settings.redirect_uri, state)


def callback(settings: Settings, query) -> int:
    """ Store tokens from a redirect, printing the reason when it fails. """
    expected_state = None
    if isinstance(query, str) and os.path.exists(state_path(settings)):
        with open(state_path(settings), "r") as f:
            expected_state = f.read().strip()

    ok, target = handle_callback(build_manager(settings), query, expected_state)
    if not ok:
        print(f"OAuth failed: {error_message(target)}")
        print(RECONNECT)
        return 1

    if expected_state is not None:
        os.remove(state_path(settings))
    print(target)
    return 0


def build_manager(settings: Settings) -> TokenManager:
    return TokenManager(
        store=FileCredentialStore(settings.token_path),
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        redirect_uri=settings.redirect_uri,
        timeout=settings.timeout,
    )


def run(settings: Settings, source=None, client: HubSpotClient = None) -> int:
    """Syncs the spreadsheet into HubSpot.

    Authentication failures short-circuit to a reconnect prompt; everything
    else is reported per record.
    """
    info("Initiating clients.")
    manager: TokenManager = build_manager(settings)

    if not manager.is_authorized():
        print(RECONNECT)
        return 1

    source = source or SheetsClient(
        settings.spreadsheet_id,
        settings.sheet_name,
        service_account_file=settings.service_account_file,
    )
    client = client or HubSpotClient(
        base=settings.hubspot_base,
        limiter=RateLimiter(settings.requests_per_second),
        dedupe=settings.dedupe,
        link_companies=settings.link_companies,
        fail_open=settings.fail_open,
        timeout=settings.timeout,
    )

    try:
        summary = sync_all(source, client, manager.get_valid_access_token)
    except (NotAuthenticated, TokenError) as e:
        error(f"Authentication failed. {e}")
        print(RECONNECT)
        return 1

    print(format_summary(summary))
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sheetsync", description="Sync spreadsheet contacts into HubSpot."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("authorize", help="Print the URL that installs the app.")

    callback = commands.add_parser(
        "callback", help="Store tokens from a pasted redirect URL."
    )
    callback.add_argument("url")

    exchange = commands.add_parser(
        "exchange", help="Exchange an authorization code for tokens."
    )
    exchange.add_argument("code")

    commands.add_parser("sync", help="Upload the sheet's contacts.")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    getLogger().setLevel(INFO)
    load_dotenv()
    args = parse_args(argv)

    try:
        settings: Settings = Settings.from_env()
    except ConfigError as e:
        error(str(e))
        return 2

    if args.command == "authorize":
        print(authorize(settings))
        return 0

    if args.command == "callback":
        return callback(settings, args.url)

    if args.command == "exchange":
        return callback(settings, {"code": args.code})

    return run(settings)


if __name__ == "__main__":
    sys.exit(main())
