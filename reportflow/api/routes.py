from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from reportflow.api.auth import require_api_key
from reportflow.api.schemas import (
    ChatMessageRequest,
    CreateReportRequest,
    EnterChatRequest,
    ErrorResponse,
    EvidenceRequest,
    FlowView,
    IncidentsRequest,
    LeaveChatRequest,
    NavigateRequest,
    NavigateResponse,
    ReportView,
    TicketExtractionRequest,
    TicketKind,
)
from reportflow.core import flow_controller as flow
from reportflow.core import lifecycle
from reportflow.core import report_service as service
from reportflow.core.errors import InvalidStepForType
from reportflow.core.flow_constants import CHAT_STEPS
from reportflow.core.state_machine import DRIVER_EVENTS, TIMEOUT
from reportflow.core.timeout_watcher import format_time_remaining, is_expired
from reportflow.store.models import ReportState
from reportflow.utils.time import to_iso

# Bodies written by the domain error handlers in reportflow.main
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (404, 409, 422, 423)}

router = APIRouter(prefix="/reports", dependencies=[Depends(require_api_key)], responses=ERROR_RESPONSES)

# The driver UI may also record an expiry it observed on screen
DRIVER_REQUESTABLE_EVENTS = DRIVER_EVENTS + (TIMEOUT,)


def _was_redirected(report_type: str, requested: Optional[str], resolved: str) -> bool:
    """Aliases resolve to their step; only a step outside the flow is a redirect."""
    if not requested:
        return False
    if requested in CHAT_STEPS:
        return resolved not in CHAT_STEPS
    try:
        return flow.validate_step(report_type, requested) != resolved
    except InvalidStepForType:
        return True


def report_view(report: ReportState) -> ReportView:
    return ReportView(
        reportId=report.reportId,
        status=report.status,
        reportType=report.reportType,
        storeCode=report.storeCode,
        storeName=report.storeName,
        storeZone=report.storeZone,
        evidenceKeys=sorted(k for k, v in report.evidence.items() if v),
        incidentCount=len(report.incidentDetails or []),
        ticketExtractionConfirmed=bool(report.ticketExtractionConfirmed),
        returnTicketExtractionConfirmed=bool(report.returnTicketExtractionConfirmed),
        resolution=report.resolution,
        createdAt=to_iso(report.createdAt),
        submittedAt=to_iso(report.submittedAt),
        resolvedAt=to_iso(report.resolvedAt),
        timeoutAt=to_iso(report.timeoutAt),
        expired=is_expired(report),
        timeRemaining=format_time_remaining(report),
        step=flow.next_step_for_report(report),
        validEvents=lifecycle.valid_events(report),
        version=int(report.version),
    )


@router.post("", response_model=ReportView, status_code=201)
def create_report(body: CreateReportRequest):
    report = service.create_draft(
        user_id=body.userId,
        report_type=body.reportType,
        store_code=body.storeCode,
        store_name=body.storeName,
        store_zone=body.storeZone,
        driver_name=body.driverName,
    )
    return report_view(report)


@router.get("/{report_id}", response_model=ReportView)
def get_report(report_id: str):
    return report_view(service.get_report(report_id))


@router.delete("/{report_id}", status_code=204)
def cancel_report(report_id: str, user_id: Optional[str] = Query(default=None, alias="userId")):
    service.cancel_report(report_id, user_id)


@router.get("/{report_id}/flow", response_model=FlowView)
def get_flow(report_id: str, step: Optional[str] = None):
    """
    Wizard host entry point: the step to render for an optional requested
    step. Invalid requests are redirected, never rejected.
    """
    report = service.get_report(report_id)
    resolved = service.current_step(report, step)
    return FlowView(
        reportId=report.reportId,
        step=resolved,
        requested=step,
        redirected=_was_redirected(report.reportType, step, resolved),
        validSteps=list(flow.steps_for_type(flow.flow_type(report.reportType))),
    )


@router.post("/{report_id}/flow/next", response_model=NavigateResponse)
def navigate(report_id: str, body: NavigateRequest):
    nxt = service.navigate(report_id, body.step, body.answer)
    return NavigateResponse(reportId=report_id, step=nxt)


@router.put("/{report_id}/evidence/{key}", response_model=ReportView)
def upload_evidence(report_id: str, key: str, body: EvidenceRequest):
    return report_view(service.upload_evidence(report_id, key, body.ref))


@router.put("/{report_id}/incidents", response_model=ReportView)
def record_incidents(report_id: str, body: IncidentsRequest):
    items = [i.model_dump() for i in body.items]
    return report_view(service.record_incidents(report_id, items))


@router.put("/{report_id}/tickets/{kind}", response_model=ReportView)
def record_ticket_extraction(report_id: str, kind: TicketKind, body: TicketExtractionRequest):
    return report_view(service.record_ticket_extraction(report_id, kind, body.data))


@router.post("/{report_id}/tickets/{kind}/confirm", response_model=ReportView)
def confirm_ticket_extraction(report_id: str, kind: TicketKind):
    return report_view(service.confirm_ticket_extraction(report_id, kind))


@router.post("/{report_id}/events/{event}", response_model=ReportView)
def apply_event(report_id: str, event: str):
    if event not in DRIVER_REQUESTABLE_EVENTS:
        raise HTTPException(status_code=403, detail=f"Event {event} is not available to drivers")
    return report_view(service.apply_event(report_id, event))


@router.post("/{report_id}/chat/enter", response_model=ReportView)
def enter_chat(report_id: str, body: EnterChatRequest):
    return report_view(service.enter_chat(report_id, body.fromStep))


@router.post("/{report_id}/chat/leave", response_model=ReportView)
def leave_chat(report_id: str, body: LeaveChatRequest):
    return report_view(service.leave_chat(report_id, body.returnTo))


@router.post("/{report_id}/chat/messages", status_code=202)
def post_chat_message(report_id: str, body: ChatMessageRequest):
    return {"reportId": report_id, "notified": service.post_chat_message(report_id, body.text)}
