"""Sync status report: how many specs are linked to a GitHub issue."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from specflow.core.models import EntityType, SyncStatus

if TYPE_CHECKING:
    from specflow.core.state import StateManager


@dataclass
class SyncError:
    """A spec whose last sync failed."""

    spec_id: str
    spec_name: str
    error_message: str


@dataclass
class SyncStatusReport:
    """Counts of synced and unsynced specs.

    ``sync_rate`` is the percentage of specs with a linked issue, rounded to
    an integer; 0 when there are no specs.
    """

    synced: int = 0
    not_synced: int = 0
    sync_rate: int = 0
    errors: list[SyncError] = field(default_factory=list)
    not_synced_spec_ids: list[str] = field(default_factory=list)
    merged_pull_requests: int = 0


def build_sync_report(state: StateManager) -> SyncStatusReport:
    """Summarize the spec sync records held in ``state``. Makes no network calls."""
    specs = state.list_specs()
    records = {r.entity_id: r for r in state.list_sync_records(EntityType.SPEC)}
    names = {spec.id: spec.name for spec in specs}

    report = SyncStatusReport()
    for spec in specs:
        record = records.get(spec.id)
        if record is not None and record.is_linked:
            report.synced += 1
        else:
            report.not_synced += 1
            report.not_synced_spec_ids.append(spec.id)

    for record in records.values():
        if record.sync_status == SyncStatus.FAILED:
            report.errors.append(
                SyncError(
                    spec_id=record.entity_id,
                    spec_name=names.get(record.entity_id, "Unknown"),
                    error_message=record.error_message or "Unknown error",
                )
            )
        if record.pr_merged_at is not None:
            report.merged_pull_requests += 1

    if specs:
        report.sync_rate = round(report.synced / len(specs) * 100)
    return report
