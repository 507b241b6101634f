import copy
from contextlib import nullcontext
from unittest.mock import patch, MagicMock

import pytest

from reportflow.core.errors import ConcurrentModification, ReportNotFound
from reportflow.core.state_machine import SUBMITTED
from reportflow.store.report_repo import report_from_dict, report_to_dict

# Realistic epoch ms; small values would be read back as seconds by the repo migration
T0 = 1_760_000_000_000


class MemoryReports:
    """Dict-backed stand-in for the Redis report repo with the same version check."""

    def __init__(self):
        self.rows = {}
        self.unindexed = []

    def load(self, report_id):
        if report_id not in self.rows:
            raise ReportNotFound(report_id)
        return report_from_dict(copy.deepcopy(self.rows[report_id]))

    def save(self, report, *, create=False):
        stored = self.rows.get(report.reportId)
        if create:
            if stored is not None:
                raise ConcurrentModification(report.reportId, report.version)
        else:
            if stored is None:
                raise ReportNotFound(report.reportId)
            if stored["version"] != report.version:
                raise ConcurrentModification(report.reportId, report.version)
        report.version += 1
        self.rows[report.reportId] = report_to_dict(report)
        return report

    def put(self, report):
        self.rows[report.reportId] = report_to_dict(report)
        return report

    def delete(self, report_id):
        self.rows.pop(report_id, None)

    def due(self, now, limit=200):
        ids = [
            rid for rid, row in self.rows.items()
            if row["status"] == SUBMITTED and row["timeoutAt"] is not None and row["timeoutAt"] < now
        ]
        return ids[:limit]

    def unindex(self, report_id):
        self.unindexed.append(report_id)


@pytest.fixture
def memory_store():
    store = MemoryReports()
    with patch("reportflow.store.report_repo.load_report", side_effect=store.load), \
         patch("reportflow.store.report_repo.save_report", side_effect=store.save), \
         patch("reportflow.store.report_repo.delete_report", side_effect=store.delete), \
         patch("reportflow.store.report_repo.list_due_report_ids", side_effect=store.due), \
         patch("reportflow.store.report_repo.unindex_report", side_effect=store.unindex), \
         patch("reportflow.core.report_service.report_lock", side_effect=lambda *a, **k: nullcontext()), \
         patch("reportflow.core.timeout_watcher.report_lock", side_effect=lambda *a, **k: nullcontext()), \
         patch("reportflow.observability.metrics.get_redis", return_value=MagicMock()):
        yield store


@pytest.fixture
def mock_notify():
    with patch("reportflow.core.report_service.notify", return_value=True) as m:
        yield m
