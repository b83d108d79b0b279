"""
sheetsync.errors
~~~~~~~~~~~~~~~~

This module defines the exceptions that may abort a sync run.

Per-record remote failures never raise; the HubSpot client logs them and
returns a sentinel instead.
"""


class SyncError(Exception):
    """ Base class for all sheetsync errors. """


class ConfigError(SyncError):
    """ Raised when a required setting is missing or malformed. """


class NotAuthenticated(SyncError):
    """ Raised when no credential has been stored yet. """


class TokenError(SyncError):
    """ Raised when the provider rejects a grant. Re-authentication is required. """

    def __init__(self, message: str, status: int = None, body=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body


class TokenExchangeError(TokenError):
    """ Raised when an authorization code cannot be exchanged for tokens. """


class TokenRefreshError(TokenError):
    """ Raised when a refresh token is rejected, e.g. because it was revoked. """
