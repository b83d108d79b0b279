"""
sheetsync.sync
~~~~~~~~~~~~~~

This module implements the sync loop that drives sheet rows into HubSpot.
"""

from logging import info
from typing import Callable, Optional

from sheetsync.clients.hubspot import HubSpotClient
from sheetsync.models import Outcome, RecordResult, RunSummary


def sync_all(source, client: HubSpotClient, get_token: Callable[[], str]) -> RunSummary:
    """ Upload every record of a source, one at a time, in source order.

    The token is only requested once there is something to upload. Errors
    from `get_token` (no credential, rejected refresh) abort the run; per-row
    failures are recorded and the loop carries on.

    :param source: An object with a `read_records()` method.
    :param client: A `HubSpotClient` instance.
    :param get_token: Callable returning a valid access token.
    :return: A `RunSummary`.
    """
    records: list = source.read_records()
    if not records:
        info("No records found in the sheet.")
        return RunSummary(empty=True)

    token: str = get_token()

    info(f"Starting sync of {len(records)} records.")
    summary = RunSummary()
    for i, record in enumerate(records):
        contact: Optional[dict] = client.upload_contact(record, token)

        if contact is not None:
            outcome: Outcome = Outcome.CREATED
        else:
            outcome = client.last_outcome or Outcome.FAILED

        name: str = " ".join(
            p for p in (record.get("First Name"), record.get("Last Name")) if p
        )
        summary.add(
            RecordResult(
                index=i,
                name=name,
                email=record.get("Email") or "",
                outcome=outcome,
                contact_id=str(contact["id"]) if contact and contact.get("id") else None,
            )
        )

    info(f"Sync complete! {summary.succeeded} succeeded, {summary.failed} failed.")
    return summary
