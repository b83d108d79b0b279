"""
sheetsync.store
~~~~~~~~~~~~~~~

This module implements credential stores.

A store persists a single `Credential` and hands it back on request. The
token manager writes through to it on every exchange and refresh.
"""

import json
import os
import tempfile
from logging import error, info
from typing import Optional

from sheetsync.models import Credential


class CredentialStore:
    """ Interface for credential persistence. """

    def load(self) -> Optional[Credential]:
        raise NotImplementedError

    def save(self, credential: Credential) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    """ Keep the credential in process memory. Useful for tests. """

    def __init__(self, credential: Credential = None):
        self._data: Optional[dict] = credential.to_dict() if credential else None

    def load(self) -> Optional[Credential]:
        return Credential.from_dict(self._data) if self._data else None

    def save(self, credential: Credential) -> None:
        self._data = credential.to_dict()


class FileCredentialStore(CredentialStore):
    """ Persist the credential as a JSON document at a fixed path.

    The file is always written whole: the new content goes to a temporary file
    in the same directory which then replaces the old one.

    :param path: Path of the JSON token file.
    """

    def __init__(self, path: str):
        self.path: str = path

    def load(self) -> Optional[Credential]:
        """ Read the stored credential.

        A missing or unreadable file yields `None`, which callers treat as
        "not authenticated".
        """
        if not os.path.exists(self.path):
            return None

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except ValueError as e:
            error(f"Token file {self.path} is corrupt, ignoring it. {e}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            error(f"Token file {self.path} holds no access token, ignoring it.")
            return None

        return Credential.from_dict(data)

    def save(self, credential: Credential) -> None:
        directory: str = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".token-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(credential.to_dict(), f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

        info(f"Saved tokens to {self.path}.")
