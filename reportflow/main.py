from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from reportflow.api.routes import router
from reportflow.api.admin_routes import router as admin_router
from reportflow.api.schemas import ErrorResponse
from reportflow.core.errors import (
    ConcurrentModification,
    GuardFailed,
    InvalidEvidenceKey,
    InvalidStepForType,
    InvalidTransition,
    ReportNotEditable,
    ReportNotFound,
    UnknownReportType,
)
from reportflow.observability.logging import log
from reportflow.settings import settings
from reportflow.utils.lock import LockNotAcquired

app = FastAPI(title="Report Lifecycle API")

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Report lifecycle API is running. Use /health and /reports.",
    }


@app.get("/health")
def health():
    return {"status": "ok"}


def _error(status_code: int, exc: Exception, **context) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=type(exc).__name__, detail=str(exc), context=context).model_dump(),
    )


# ---------------------------------------------------------------------------
# Domain errors -> HTTP. Handlers are matched on the most specific class,
# so GuardFailed keeps its guard name in the response.
# ---------------------------------------------------------------------------
@app.exception_handler(ReportNotFound)
async def report_not_found_handler(request: Request, exc: ReportNotFound):
    return _error(404, exc, reportId=exc.report_id)


@app.exception_handler(GuardFailed)
async def guard_failed_handler(request: Request, exc: GuardFailed):
    return _error(409, exc, status=exc.status, transition=exc.event, guard=exc.guard)


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return _error(409, exc, status=exc.status, transition=exc.event)


@app.exception_handler(ConcurrentModification)
async def concurrent_modification_handler(request: Request, exc: ConcurrentModification):
    return _error(409, exc, reportId=exc.report_id)


@app.exception_handler(LockNotAcquired)
async def lock_not_acquired_handler(request: Request, exc: LockNotAcquired):
    log(event="report_lock_contended", reportId=exc.report_id, path=request.url.path)
    return _error(409, exc, reportId=exc.report_id)


@app.exception_handler(UnknownReportType)
async def unknown_report_type_handler(request: Request, exc: UnknownReportType):
    return _error(422, exc, reportType=exc.report_type)


@app.exception_handler(InvalidEvidenceKey)
async def invalid_evidence_key_handler(request: Request, exc: InvalidEvidenceKey):
    return _error(422, exc, reportType=exc.report_type, key=exc.key)


@app.exception_handler(InvalidStepForType)
async def invalid_step_handler(request: Request, exc: InvalidStepForType):
    return _error(422, exc, reportType=exc.report_type, step=exc.step)


@app.exception_handler(ReportNotEditable)
async def report_not_editable_handler(request: Request, exc: ReportNotEditable):
    return _error(423, exc, reportId=exc.report_id, status=exc.status)
