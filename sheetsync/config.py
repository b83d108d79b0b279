"""
sheetsync.config
~~~~~~~~~~~~~~~~

This module gathers runtime settings from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from sheetsync.errors import ConfigError

DEFAULT_SCOPES = "crm.objects.contacts.read crm.objects.contacts.write"
DEFAULT_REDIRECT_URI = "http://localhost:3000/oauth-callback"


def _flag(name: str, default: bool) -> bool:
    value: Optional[str] = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _number(name: str, default: float) -> float:
    value: Optional[str] = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}.")


@dataclass
class Settings:
    """ Model the runtime configuration.

    Required values are `CLIENT_ID` and `CLIENT_SECRET`; everything else has a
    default suitable for a local install.
    """

    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: str = DEFAULT_SCOPES
    token_path: str = "token.json"

    spreadsheet_id: str = ""
    sheet_name: str = "Hubspot Upload"
    service_account_file: str = "service-account.json"

    hubspot_base: str = "https://api.hubapi.com"
    requests_per_second: float = 10.0
    timeout: float = 30.0

    dedupe: bool = True
    link_companies: bool = True
    fail_open: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        client_id: Optional[str] = os.getenv("CLIENT_ID")
        client_secret: Optional[str] = os.getenv("CLIENT_SECRET")
        if not client_id or not client_secret:
            raise ConfigError("Missing CLIENT_ID or CLIENT_SECRET environment variable.")

        # SCOPE may be separated by spaces, commas or %20.
        scope: str = os.getenv("SCOPE", "")
        scopes: str = (
            " ".join(s for s in scope.replace("%20", " ").replace(",", " ").split())
            or DEFAULT_SCOPES
        )

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=os.getenv("REDIRECT_URI", DEFAULT_REDIRECT_URI),
            scopes=scopes,
            token_path=os.getenv("TOKEN_PATH", "token.json"),
            spreadsheet_id=os.getenv("SPREADSHEET_ID", ""),
            sheet_name=os.getenv("SHEET_NAME", "Hubspot Upload"),
            service_account_file=os.getenv(
                "SERVICE_ACCOUNT_FILE", "service-account.json"
            ),
            hubspot_base=os.getenv("HUBSPOT_BASE_URL", "https://api.hubapi.com"),
            requests_per_second=_number("REQUESTS_PER_SECOND", 10.0),
            timeout=_number("HTTP_TIMEOUT", 30.0),
            dedupe=_flag("DEDUPE", True),
            link_companies=_flag("LINK_COMPANIES", True),
            fail_open=_flag("FAIL_OPEN", True),
        )
