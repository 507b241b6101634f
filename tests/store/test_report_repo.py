import json
import pytest
from unittest.mock import patch, MagicMock

from redis.exceptions import WatchError

from reportflow.core.errors import ConcurrentModification, ReportNotFound
from reportflow.core.state_machine import DRAFT, SUBMITTED, TIENDA_CERRADA
from reportflow.store.models import ReportState
from reportflow.store.report_repo import (
    TIMEOUT_INDEX,
    _migrate_report_data,
    list_due_report_ids,
    load_report,
    report_from_dict,
    report_to_dict,
    save_report,
)

T0 = 1_760_000_000_000


def test_migrate_legacy_columns():
    data = {
        "id": "r-legacy",
        "user_id": "u9",
        "tipo_reporte": "tienda_cerrada",
        "store_zona": "sur",
        "conductor_nombre": "Luis",
        "created_at": 1_700_000_000,
        "timeout_at": "2025-10-09T12:00:00Z",
        "submitted_at": None,
        "evidence": None,
    }
    migrated = _migrate_report_data(data)
    assert migrated["reportId"] == "r-legacy"
    assert migrated["userId"] == "u9"
    assert migrated["reportType"] == TIENDA_CERRADA
    assert migrated["storeZone"] == "sur"
    assert migrated["driverName"] == "Luis"
    assert migrated["createdAt"] == 1_700_000_000_000
    assert migrated["timeoutAt"] == 1_760_011_200_000
    assert migrated["submittedAt"] is None
    assert migrated["evidence"] == {}
    assert "tipo_reporte" not in migrated


def test_migrate_prefers_current_field_and_purges_unknown():
    data = {"reportId": "r1", "id": "old-id", "legacy_junk": 1, "reportType": ""}
    migrated = _migrate_report_data(data)
    assert migrated["reportId"] == "r1"
    assert migrated["reportType"] == "entrega"
    assert "legacy_junk" not in migrated
    assert "id" not in migrated


def test_migrate_corrupt_timestamp_surfaces():
    with pytest.raises(ValueError):
        _migrate_report_data({"reportId": "r1", "timeoutAt": "yesterday"})


def test_free_form_metadata_and_old_incidents_rehydrate():
    r = report_from_dict({
        "reportId": "r1",
        "metadata": {"should_return_to_step": "8", "chat_room": "room-7"},
        "incidentDetails": [{"productName": "Pan", "quantity": "2", "photo": "img://p"}],
    })
    assert r.metadata.should_return_to_step == "8"
    assert r.metadata.last_step_before_chat is None
    assert r.metadata.extra == {"chat_room": "room-7"}
    assert r.incidentDetails[0].photoRef == "img://p"


def test_dict_round_trip_keeps_typed_fields():
    r = ReportState(reportId="r1", status=SUBMITTED, timeoutAt=T0, evidence={"ticket": "img://t"})
    r.metadata.last_step_before_chat = "4b"
    again = report_from_dict(json.loads(json.dumps(report_to_dict(r))))
    assert again == r


def _mock_redis(stored=None):
    mock_redis = MagicMock()
    pipe = mock_redis.pipeline.return_value.__enter__.return_value
    pipe.get.return_value = json.dumps(report_to_dict(stored)) if stored else None
    return mock_redis, pipe


@patch("reportflow.store.report_repo.get_redis")
def test_load_missing_report(mock_get_redis):
    mock_get_redis.return_value.get.return_value = None
    with pytest.raises(ReportNotFound):
        load_report("nope")


@patch("reportflow.store.report_repo.get_redis")
def test_save_bumps_version_and_indexes_submitted(mock_get_redis):
    stored = ReportState(reportId="r1", status=DRAFT, version=3)
    mock_redis, pipe = _mock_redis(stored)
    mock_get_redis.return_value = mock_redis

    nxt = ReportState(reportId="r1", status=SUBMITTED, version=3, timeoutAt=T0)
    saved = save_report(nxt)

    assert saved.version == 4
    pipe.watch.assert_called_with("report:r1")
    written = json.loads(pipe.set.call_args.args[1])
    assert written["version"] == 4
    pipe.zadd.assert_called_with(TIMEOUT_INDEX, {"r1": T0})
    pipe.execute.assert_called_once()


@patch("reportflow.store.report_repo.get_redis")
def test_save_unindexes_when_leaving_submitted(mock_get_redis):
    mock_redis, pipe = _mock_redis(ReportState(reportId="r1", status=SUBMITTED, version=1))
    mock_get_redis.return_value = mock_redis
    save_report(ReportState(reportId="r1", status="timed_out", version=1, timeoutAt=T0))
    pipe.zrem.assert_called_with(TIMEOUT_INDEX, "r1")
    pipe.zadd.assert_not_called()


@patch("reportflow.store.report_repo.get_redis")
def test_save_with_stale_version_conflicts(mock_get_redis):
    mock_redis, pipe = _mock_redis(ReportState(reportId="r1", version=5))
    mock_get_redis.return_value = mock_redis
    with pytest.raises(ConcurrentModification):
        save_report(ReportState(reportId="r1", version=4))
    pipe.execute.assert_not_called()


@patch("reportflow.store.report_repo.get_redis")
def test_save_watch_error_conflicts_and_restores_version(mock_get_redis):
    mock_redis, pipe = _mock_redis(ReportState(reportId="r1", version=2))
    pipe.execute.side_effect = WatchError()
    mock_get_redis.return_value = mock_redis
    r = ReportState(reportId="r1", version=2)
    with pytest.raises(ConcurrentModification):
        save_report(r)
    assert r.version == 2


@patch("reportflow.store.report_repo.get_redis")
def test_create_refuses_existing_record(mock_get_redis):
    mock_redis, pipe = _mock_redis(ReportState(reportId="r1"))
    mock_get_redis.return_value = mock_redis
    with pytest.raises(ConcurrentModification):
        save_report(ReportState(reportId="r1"), create=True)


@patch("reportflow.store.report_repo.get_redis")
def test_due_ids_exclude_exact_deadline(mock_get_redis):
    mock_get_redis.return_value.zrangebyscore.return_value = ["a", "b"]
    assert list_due_report_ids(T0, 50) == ["a", "b"]
    mock_get_redis.return_value.zrangebyscore.assert_called_with(
        TIMEOUT_INDEX, "-inf", f"({T0}", start=0, num=50
    )
