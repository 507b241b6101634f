"""
Report service: the lock-load-check-save sequences behind every write.

Every mutation runs under report_lock and re-reads the record inside it, so
two concurrent requests on one report have exactly one winner; the loser
re-reads the winner's state and gets InvalidTransition (or a status error)
instead of overwriting it. Notifications are sent after the lock is released
and never fail the write that triggered them.
"""
from typing import Any, Callable, Dict, List, Optional

import reportflow.observability.metrics as metrics
from reportflow.core import flow_controller as flow
from reportflow.core import lifecycle
from reportflow.core.errors import (
    InvalidEvidenceKey,
    InvalidTransition,
    ReportNotEditable,
    ReportNotFound,
    UnknownReportType,
)
from reportflow.core.flow_constants import CHAT_STEPS, EV_RETURN_TICKET, EV_TICKET, EVIDENCE_KEYS_BY_TYPE
from reportflow.core.state_machine import (
    ALL_REPORT_TYPES,
    DRAFT,
    FLOW_REPORT_TYPES,
    SUBMIT,
    SUBMITTED,
    TIMEOUT,
)
from reportflow.core.timeout_watcher import apply_timeout_policy
from reportflow.notify.notifier import notify
from reportflow.notify.payloads import CHAT_MESSAGE, CHAT_STARTED, REPORT_SUBMITTED
from reportflow.observability.logging import log
from reportflow.store import report_repo
from reportflow.store.models import IncidentItem, ReportState
from reportflow.utils.lock import report_lock

# Statuses in which the driver may still add evidence or answer wizard steps
EDITABLE_STATUSES = (DRAFT, SUBMITTED)

TICKET_KINDS = (EV_TICKET, EV_RETURN_TICKET)


def _mutate(report_id: str, fn: Callable[[ReportState], ReportState]) -> ReportState:
    with report_lock(report_id):
        report = report_repo.load_report(report_id)
        nxt = fn(report)
        return report_repo.save_report(nxt)


def _require_editable(report: ReportState, action: str) -> None:
    if report.status not in EDITABLE_STATUSES:
        raise ReportNotEditable(report.reportId, report.status, action)


# ============================================================
# Creation / cancellation (outside the lifecycle machine)
# ============================================================

def create_draft(
    *,
    user_id: str,
    report_type: str,
    store_code: str = "",
    store_name: str = "",
    store_zone: str = "",
    driver_name: str = "",
) -> ReportState:
    if report_type not in ALL_REPORT_TYPES:
        raise UnknownReportType(report_type)
    report = report_repo.create_report(
        user_id=user_id,
        report_type=report_type,
        store_code=store_code,
        store_name=store_name,
        store_zone=store_zone,
        driver_name=driver_name,
    )
    log(
        event="report_created",
        reportId=report.reportId,
        reportType=report_type,
        storeCode=store_code,
        storeZone=store_zone,
        hasFlow=report_type in FLOW_REPORT_TYPES,
    )
    return report


def cancel_report(report_id: str, user_id: Optional[str] = None) -> None:
    """Owner discards a draft. Deletion bypasses the machine and is terminal."""
    with report_lock(report_id):
        report = report_repo.load_report(report_id)
        if user_id is not None and report.userId != user_id:
            raise ReportNotFound(report_id)
        if report.status != DRAFT:
            raise ReportNotEditable(report_id, report.status, "cancel")
        report_repo.delete_report(report_id)
    log(event="report_cancelled", reportId=report_id)


def get_report(report_id: str) -> ReportState:
    return report_repo.load_report(report_id)


# ============================================================
# Lifecycle events
# ============================================================

def apply_event(report_id: str, event: str, now_ms: Optional[int] = None) -> ReportState:
    """
    Applies one lifecycle event. TIMEOUT goes through the timeout policy so a
    UI-triggered expiry behaves exactly like the sweep.
    """
    def _apply(report: ReportState) -> ReportState:
        try:
            if event == TIMEOUT:
                return apply_timeout_policy(report, now_ms)
            return lifecycle.transition(report, event, now_ms)
        except InvalidTransition as e:
            metrics.safe(metrics.increment_transition_rejected)
            log(
                event="transition_rejected",
                reportId=report.reportId,
                status=e.status,
                requested=e.event,
                reason=e.reason,
            )
            raise

    report = _mutate(report_id, _apply)

    metrics.safe(metrics.increment_transition, event)
    log(
        event="transition_applied",
        reportId=report.reportId,
        transition=event,
        status=report.status,
        version=report.version,
    )
    if event == SUBMIT:
        notify(REPORT_SUBMITTED, report)
    return report


# ============================================================
# Evidence, incidents, tickets
# ============================================================

def upload_evidence(report_id: str, key: str, ref: str) -> ReportState:
    """
    Records an evidence reference from the evidence store. A retake replaces
    the value; the key is never removed. Replacing a ticket image drops its
    earlier OCR confirmation.
    """
    def _apply(report: ReportState) -> ReportState:
        _require_editable(report, f"upload {key}")
        allowed = EVIDENCE_KEYS_BY_TYPE[flow.flow_type(report.reportType)]
        if key not in allowed:
            raise InvalidEvidenceKey(report.reportType, key)
        if not ref:
            raise InvalidEvidenceKey(report.reportType, key)
        retake = report.has_evidence(key)
        report.evidence[key] = ref
        if key == EV_TICKET:
            report.ticketExtractionConfirmed = False
        elif key == EV_RETURN_TICKET:
            report.returnTicketExtractionConfirmed = False
        log(event="evidence_uploaded", reportId=report.reportId, key=key, ref=ref, retake=retake)
        return report

    return _mutate(report_id, _apply)


def record_incidents(report_id: str, items: List[Dict[str, Any]]) -> ReportState:
    def _apply(report: ReportState) -> ReportState:
        _require_editable(report, "record incidents")
        report.incidentDetails = [
            IncidentItem(
                productName=str(i.get("productName") or ""),
                quantity=str(i.get("quantity") or ""),
                reason=str(i.get("reason") or ""),
                photoRef=i.get("photoRef") or None,
            )
            for i in items
        ]
        log(event="incidents_recorded", reportId=report.reportId, count=len(report.incidentDetails))
        return report

    return _mutate(report_id, _apply)


def _check_ticket_kind(report: ReportState, kind: str) -> None:
    if kind not in TICKET_KINDS:
        raise InvalidEvidenceKey(report.reportType, kind)


def record_ticket_extraction(report_id: str, kind: str, data: Dict[str, Any]) -> ReportState:
    """Stores OCR output (opaque to the core); it stays untrusted until confirmed."""
    def _apply(report: ReportState) -> ReportState:
        _check_ticket_kind(report, kind)
        _require_editable(report, f"record {kind} extraction")
        if kind == EV_TICKET:
            report.ticketData = dict(data)
            report.ticketExtractionConfirmed = False
        else:
            report.returnTicketData = dict(data)
            report.returnTicketExtractionConfirmed = False
        log(event="ticket_extraction_recorded", reportId=report.reportId, kind=kind)
        return report

    return _mutate(report_id, _apply)


def confirm_ticket_extraction(report_id: str, kind: str) -> ReportState:
    def _apply(report: ReportState) -> ReportState:
        _check_ticket_kind(report, kind)
        _require_editable(report, f"confirm {kind}")
        if not report.has_evidence(kind):
            raise ReportNotEditable(report.reportId, report.status, f"confirm {kind} before uploading it")
        if kind == EV_TICKET:
            report.ticketExtractionConfirmed = True
        else:
            report.returnTicketExtractionConfirmed = True
        log(event="ticket_extraction_confirmed", reportId=report.reportId, kind=kind)
        return report

    return _mutate(report_id, _apply)


# ============================================================
# Wizard position and chat detours
# ============================================================

def current_step(report: ReportState, requested: Optional[str] = None) -> str:
    """
    Step to render. An explicit request is honoured when valid for the type
    (redirected to the first step otherwise); without one, the flow
    controller decides. currentStepHint is never trusted.
    """
    if requested:
        return flow.resolve_requested_step(report.reportType, requested, report.status)
    return flow.next_step_for_report(report)


def navigate(report_id: str, step: str, answer: Optional[str] = None) -> str:
    """
    Driver pressed continue (or yes/no) on `step`. Persists the target as the
    advisory hint and consumes a pending return override once the driver has
    acted on that step. Chat targets are not persisted as steps.
    """
    target = {}

    def _apply(report: ReportState) -> ReportState:
        _require_editable(report, "navigate")
        target["step"] = flow.advance(report.reportType, step, answer)
        current = flow.validate_step(report.reportType, step)
        if report.metadata.should_return_to_step == current:
            report.metadata.should_return_to_step = None
        if target["step"] not in CHAT_STEPS:
            report.currentStepHint = target["step"]
        return report

    report = _mutate(report_id, _apply)
    log(event="wizard_navigated", reportId=report.reportId, fromStep=step, toStep=target["step"])
    return target["step"]


def enter_chat(report_id: str, from_step: str) -> ReportState:
    """Driver detours into the support chat from `from_step`."""
    def _apply(report: ReportState) -> ReportState:
        _require_editable(report, "open chat")
        report.metadata.last_step_before_chat = flow.resolve_requested_step(report.reportType, from_step)
        report.metadata.should_return_to_step = None
        return report

    report = _mutate(report_id, _apply)
    log(event="chat_entered", reportId=report.reportId, fromStep=report.metadata.last_step_before_chat)
    notify(CHAT_STARTED, report)
    return report


def leave_chat(report_id: str, return_to: Optional[str] = None) -> ReportState:
    """
    Driver leaves the chat. The wizard resumes at `return_to` when given,
    else where the detour started. Only open reports can be steered; once the
    timeout policy has resolved a report its override stays in place.
    """
    def _apply(report: ReportState) -> ReportState:
        _require_editable(report, "leave chat")
        meta = report.metadata
        if return_to:
            target = flow.resolve_requested_step(report.reportType, return_to, report.status)
        else:
            target = meta.last_step_before_chat or flow.first_step(report.reportType)
        meta.should_return_to_step = None if target in CHAT_STEPS else target
        meta.last_step_before_chat = None
        return report

    report = _mutate(report_id, _apply)
    log(event="chat_left", reportId=report.reportId, returnTo=report.metadata.should_return_to_step)
    return report


def post_chat_message(report_id: str, text: str) -> bool:
    """New driver message; agents are notified. Message storage lives elsewhere."""
    report = report_repo.load_report(report_id)
    log(event="chat_message", reportId=report_id, text=text)
    return notify(CHAT_MESSAGE, report, text=text)
