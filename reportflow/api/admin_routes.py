from dataclasses import asdict

from fastapi import APIRouter, Depends

import reportflow.observability.metrics as metrics
from reportflow.api.auth import require_admin
from reportflow.api.routes import ERROR_RESPONSES, report_view
from reportflow.api.schemas import ReportView
from reportflow.core import report_service as service
from reportflow.core.state_machine import ADMIN_COMPLETES, ARCHIVE
from reportflow.observability.logging import log
from reportflow.queue.jobs import sweep_timeouts_job
from reportflow.queue.rq_conn import get_queue


router = APIRouter(prefix="/admin", tags=["admin"], responses=ERROR_RESPONSES)


@router.get("/reports/{report_id}")
def get_report_snapshot(report_id: str, _=Depends(require_admin)):
    """Full record for the commercial agent's reconciliation view."""
    r = service.get_report(report_id)
    view = report_view(r).model_dump()
    view.update({
        "userId": r.userId,
        "driverName": r.driverName,
        "evidence": dict(r.evidence),
        "incidentDetails": [asdict(i) for i in r.incidentDetails],
        "ticketData": r.ticketData,
        "returnTicketData": r.returnTicketData,
        "metadata": {
            "should_return_to_step": r.metadata.should_return_to_step,
            "last_step_before_chat": r.metadata.last_step_before_chat,
            **r.metadata.extra,
        },
        "currentStepHint": r.currentStepHint,
    })
    return view


@router.post("/reports/{report_id}/complete", response_model=ReportView)
def complete_report(report_id: str, _=Depends(require_admin)):
    return report_view(service.apply_event(report_id, ADMIN_COMPLETES))


@router.post("/reports/{report_id}/archive", response_model=ReportView)
def archive_report(report_id: str, _=Depends(require_admin)):
    return report_view(service.apply_event(report_id, ARCHIVE))


@router.post("/sweep", status_code=202)
def trigger_sweep(_=Depends(require_admin)):
    """Enqueue an out-of-schedule timeout sweep."""
    job = get_queue().enqueue(sweep_timeouts_job)
    log(event="sweep_enqueued", rq_job_id=getattr(job, "id", "") or "", trigger="admin")
    return {"enqueued": True, "jobId": getattr(job, "id", "") or ""}


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    return metrics.get_metrics_snapshot()
