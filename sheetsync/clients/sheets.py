"""
sheetsync.clients.sheets
~~~~~~~~~~~~~~~~~~~~~~~~

This module contains a Google Sheets record source.
"""

from logging import error, info
from typing import List

from sheetsync.utils import rows_to_records

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]


class SheetsClient:
    """ Implement the `SheetsClient` class.

    This class reads one tab of a spreadsheet with a service account and
    returns its rows as contact records keyed by the header row.

    :param spreadsheet_id: The spreadsheet's id.
    :param sheet_name: The tab to read.
    :param service_account_file: Path to the service account JSON key.
    :param service: Optional pre-built Sheets API resource.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        service_account_file: str = None,
        service=None,
    ):
        self.spreadsheet_id: str = spreadsheet_id
        self.sheet_name: str = sheet_name
        self.service = service or self._build(service_account_file)

    def _build(self, service_account_file: str):
        credentials = service_account.Credentials.from_service_account_file(
            service_account_file, scopes=SCOPES
        )
        return build("sheets", "v4", credentials=credentials, cache_discovery=False)

    def read_records(self) -> List[dict]:
        """ Read the configured tab.

        :return: A `list` of row `dict` objects, in sheet order.
        :raises googleapiclient.errors.HttpError: If the sheet can't be read.
        """
        try:
            response: dict = (
                self.service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=self.sheet_name)
                .execute()
            )
        except HttpError as e:
            error(f"Error reading sheet {self.sheet_name}. {e}")
            raise

        records: list = rows_to_records(response.get("values", []))
        info(f"Read {len(records)} records from sheet.")
        return records
