import json
import time
import uuid
from dataclasses import asdict, fields as dc_fields
from typing import List

from redis.exceptions import WatchError

from reportflow.core.errors import ConcurrentModification, ReportNotFound
from reportflow.core.state_machine import DRAFT, ENTREGA, SUBMITTED
from reportflow.observability.logging import log
from reportflow.store.models import IncidentItem, ReportMetadata, ReportState
from reportflow.store.redis_conn import get_redis
from reportflow.utils.time import now_ms, parse_timestamp_ms

PREFIX = "report:"
# Sorted set of submitted reports scored by timeoutAt; read by the timeout sweep
TIMEOUT_INDEX = "reports:timeouts"

# Column names of the original relational records
_LEGACY_FIELD_MAP = {
    "id": "reportId",
    "user_id": "userId",
    "tipo_reporte": "reportType",
    "store_codigo": "storeCode",
    "store_nombre": "storeName",
    "store_zona": "storeZone",
    "conductor_nombre": "driverName",
    "incident_details": "incidentDetails",
    "ticket_data": "ticketData",
    "ticket_extraction_confirmed": "ticketExtractionConfirmed",
    "return_ticket_data": "returnTicketData",
    "return_ticket_extraction_confirmed": "returnTicketExtractionConfirmed",
    "created_at": "createdAt",
    "submitted_at": "submittedAt",
    "resolved_at": "resolvedAt",
    "timeout_at": "timeoutAt",
    "current_step": "currentStepHint",
}

_TIMESTAMP_FIELDS = ("createdAt", "submittedAt", "resolvedAt", "timeoutAt")


def _key(report_id: str) -> str:
    return f"{PREFIX}{report_id}"


def _migrate_report_data(data: dict) -> dict:
    """
    Backward-compat migration for stored reports.
    - Renames snake_case columns of imported records to ReportState fields.
    - Normalizes timestamps (ISO strings) to epoch ms.
    - Drops undeclared top-level fields so ReportState(**data) never explodes.
    """
    renamed = 0
    for old, new in _LEGACY_FIELD_MAP.items():
        if old in data:
            if data.get(new) is None:
                data[new] = data[old]
                renamed += 1
            del data[old]

    for name in _TIMESTAMP_FIELDS:
        if name in data:
            data[name] = parse_timestamp_ms(data[name])

    if not data.get("reportType"):
        data["reportType"] = ENTREGA
    if data.get("evidence") is None:
        data["evidence"] = {}
    if data.get("incidentDetails") is None:
        data["incidentDetails"] = []

    allowed = {f.name for f in dc_fields(ReportState)}
    removed = [k for k in data.keys() if k not in allowed]
    for k in removed:
        del data[k]

    if renamed or removed:
        log(
            event="report_migrated",
            reportId=data.get("reportId") or "",
            renamedFields=int(renamed),
            removedFields=len(removed),
        )
    return data


def _rehydrate_metadata(raw) -> ReportMetadata:
    """Accepts the typed shape or the free-form map older records carry."""
    if isinstance(raw, ReportMetadata):
        return raw
    raw = dict(raw or {})
    extra = dict(raw.pop("extra", None) or {})
    should_return = raw.pop("should_return_to_step", None)
    last_before_chat = raw.pop("last_step_before_chat", None)
    extra.update(raw)
    return ReportMetadata(
        should_return_to_step=should_return or None,
        last_step_before_chat=last_before_chat or None,
        extra=extra,
    )


def _rehydrate_incidents(raw) -> List[IncidentItem]:
    allowed = {f.name for f in dc_fields(IncidentItem)}
    out = []
    for item in raw or []:
        if isinstance(item, IncidentItem):
            out.append(item)
            continue
        item = dict(item)
        # older clients: {productName, quantity, reason, photo}
        if "photo" in item and "photoRef" not in item:
            item["photoRef"] = item.pop("photo")
        out.append(IncidentItem(**{k: v for k, v in item.items() if k in allowed}))
    return out


def report_from_dict(data: dict) -> ReportState:
    data = _migrate_report_data(dict(data))
    data["metadata"] = _rehydrate_metadata(data.get("metadata"))
    data["incidentDetails"] = _rehydrate_incidents(data.get("incidentDetails"))
    return ReportState(**data)


def report_to_dict(report: ReportState) -> dict:
    return asdict(report)


def load_report(report_id: str) -> ReportState:
    r = get_redis()
    raw = r.get(_key(report_id))
    if not raw:
        raise ReportNotFound(report_id)
    return report_from_dict(json.loads(raw))


def save_report(report: ReportState, *, create: bool = False) -> ReportState:
    """
    Conditional update: succeeds only if the stored version still equals
    report.version (or, with create=True, if no record exists yet).
    Bumps report.version on success; raises ConcurrentModification otherwise.
    Keeps the timeout index in step with status.
    """
    r = get_redis()
    key = _key(report.reportId)
    expected = int(report.version or 0)

    with r.pipeline() as pipe:
        try:
            pipe.watch(key)
            raw = pipe.get(key)
            if create:
                if raw:
                    raise ConcurrentModification(report.reportId, expected)
            else:
                if not raw:
                    raise ReportNotFound(report.reportId)
                stored_version = int(json.loads(raw).get("version") or 0)
                if stored_version != expected:
                    raise ConcurrentModification(report.reportId, expected)

            report.version = expected + 1
            report.lastUpdatedAtEpoch = int(time.time())
            payload = json.dumps(report_to_dict(report))

            pipe.multi()
            pipe.set(key, payload)
            if report.status == SUBMITTED and report.timeoutAt is not None:
                pipe.zadd(TIMEOUT_INDEX, {report.reportId: int(report.timeoutAt)})
            else:
                pipe.zrem(TIMEOUT_INDEX, report.reportId)
            pipe.execute()
        except WatchError:
            report.version = expected
            raise ConcurrentModification(report.reportId, expected) from None
    return report


def create_report(
    *,
    user_id: str,
    report_type: str,
    store_code: str = "",
    store_name: str = "",
    store_zone: str = "",
    driver_name: str = "",
) -> ReportState:
    report = ReportState(
        reportId=uuid.uuid4().hex,
        userId=user_id,
        reportType=report_type,
        storeCode=store_code,
        storeName=store_name,
        storeZone=store_zone,
        driverName=driver_name,
        status=DRAFT,
        createdAt=now_ms(),
    )
    return save_report(report, create=True)


def delete_report(report_id: str) -> None:
    r = get_redis()
    r.delete(_key(report_id))
    r.zrem(TIMEOUT_INDEX, report_id)


def list_due_report_ids(now: int, limit: int = 200) -> List[str]:
    """Submitted reports whose timeoutAt is strictly before `now`."""
    r = get_redis()
    return list(r.zrangebyscore(TIMEOUT_INDEX, "-inf", f"({int(now)}", start=0, num=int(limit)) or [])


def unindex_report(report_id: str) -> None:
    get_redis().zrem(TIMEOUT_INDEX, report_id)
