"""
sheetsync.utils
~~~~~~~~~~~~~~~

This module implements utility methods for reading and reporting.
"""

from sheetsync.models import Outcome, RunSummary

LABELS = {
    Outcome.CREATED: "Contact added",
    Outcome.SKIPPED_NO_EMAIL: "Skipped contact (no email)",
    Outcome.SKIPPED_DUPLICATE: "Skipped contact (already exists)",
    Outcome.FAILED: "Failed contact",
}


def rows_to_records(rows: list) -> list:
    """ Convert raw sheet rows into records keyed by the header row.

    The first row holds the field names. Cells missing from the end of a
    short row are filled with an empty string.

    :param rows: A `list` of row `list` objects.
    :return: A `list` of `dict` records.
    """
    if not rows:
        return []

    headers: list = rows[0]
    records: list = []
    for row in rows[1:]:
        records.append(
            {
                header: (row[i] if i < len(row) and row[i] is not None else "")
                for i, header in enumerate(headers)
            }
        )

    return records


def format_summary(summary: RunSummary) -> str:
    """ Produce a readable report of a sync run.

    :param summary: A `RunSummary` produced by `sync_all`.
    :return: A multi-line `str`.
    """
    if summary.empty:
        return "No records found in the sheet."

    lines: list = [
        f"Sync complete! {summary.succeeded} succeeded, {summary.failed} failed.",
        "Details:",
    ]
    for result in summary.results:
        line: str = f"  {LABELS[result.outcome]}: {result.name}".rstrip()
        if result.contact_id:
            line += f" (id {result.contact_id})"
        lines.append(line)

    return "\n".join(lines)
