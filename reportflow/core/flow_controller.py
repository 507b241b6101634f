"""
Evidence-Driven Flow Controller
-------------------------------
Decides which wizard screen the driver sees, from persisted data only.

INVARIANTS:
- next_step() is a pure function of (report_type, evidence, metadata,
  incident_details, status); no client-held position is trusted, so the
  wizard resumes identically on any device.
- Inputs are never mutated and no I/O happens here.
- Evidence presence (non-empty value) is the only "step done" signal.
- Report types without a flow fall back to the entrega branch.
- Wizard hosts asking for a step outside the type's set are redirected to
  the type's first step, never failed.
"""
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from reportflow.core.errors import InvalidStepForType, UnknownReportType
from reportflow.core.flow_constants import (
    CHAT_STEPS,
    EV_ARRIVAL_EXHIBIT,
    EV_FACADE,
    EV_PRODUCT_ARRANGED,
    EV_REMISSION,
    EV_RETURN_TICKET,
    EV_SCALE,
    EV_TICKET,
    EV_WASTE,
    NAVIGATION_BY_TYPE,
    STEP_ALIASES_BY_TYPE,
    STEP_ARRIVAL,
    STEP_CHAT,
    STEP_FACADE,
    STEP_FINISH,
    STEP_INCIDENT_CHECK,
    STEP_PRODUCT_ARRANGED,
    STEP_RETURN_CHECK,
    STEP_RETURN_CONFIRM,
    STEP_SCALE,
    STEP_TICKET,
    STEP_WASTE_CHECK,
    STEPS_BY_TYPE,
)
from reportflow.core.state_machine import BASCULA, ENTREGA, SUBMITTED, TIENDA_CERRADA

Evidence = Mapping[str, Any]


def _has(evidence: Optional[Evidence], key: str) -> bool:
    return bool((evidence or {}).get(key))


def _meta(metadata: Any, name: str) -> Optional[str]:
    """Read a flow signal from ReportMetadata or a plain mapping."""
    if metadata is None:
        return None
    if isinstance(metadata, Mapping):
        val = metadata.get(name)
    else:
        val = getattr(metadata, name, None)
    return val or None


# ============================================================
# Per-type branches
# ============================================================

def _tienda_cerrada_step(evidence: Optional[Evidence], incident_details: Optional[Sequence]) -> str:
    if _has(evidence, EV_FACADE):
        return STEP_FINISH
    return STEP_FACADE


def _bascula_step(evidence: Optional[Evidence], incident_details: Optional[Sequence]) -> str:
    if _has(evidence, EV_SCALE):
        return STEP_FINISH
    return STEP_SCALE


def _entrega_step(evidence: Optional[Evidence], incident_details: Optional[Sequence]) -> str:
    if not _has(evidence, EV_ARRIVAL_EXHIBIT):
        return STEP_ARRIVAL

    if not _has(evidence, EV_PRODUCT_ARRANGED):
        # Incidents already recorded means the incident question was answered "yes"
        if incident_details:
            return STEP_PRODUCT_ARRANGED
        return STEP_INCIDENT_CHECK

    # Either photo records the waste decision
    if not _has(evidence, EV_WASTE) and not _has(evidence, EV_REMISSION):
        return STEP_WASTE_CHECK

    if not _has(evidence, EV_TICKET):
        return STEP_TICKET

    if not _has(evidence, EV_RETURN_TICKET):
        return STEP_RETURN_CHECK

    return STEP_RETURN_CONFIRM


BRANCHES = {
    ENTREGA: _entrega_step,
    TIENDA_CERRADA: _tienda_cerrada_step,
    BASCULA: _bascula_step,
}


def branch_for(report_type: Optional[str]) -> Callable:
    try:
        return BRANCHES[report_type]
    except KeyError:
        raise UnknownReportType(report_type) from None


def flow_type(report_type: Optional[str]) -> str:
    """Report type whose wizard is used: itself, or entrega for legacy/unknown types."""
    return report_type if report_type in BRANCHES else ENTREGA


# ============================================================
# Ordered resolution rules (first non-None wins, report type decides otherwise)
# ============================================================

def _rule_return_override(report_type, evidence, metadata, incident_details, status) -> Optional[str]:
    return _meta(metadata, "should_return_to_step")


def _rule_chat_detour(report_type, evidence, metadata, incident_details, status) -> Optional[str]:
    if status == SUBMITTED:
        return _meta(metadata, "last_step_before_chat")
    return None


def _rule_report_type(report_type, evidence, metadata, incident_details, status) -> str:
    try:
        branch = branch_for(report_type)
    except UnknownReportType:
        branch = BRANCHES[ENTREGA]
    return branch(evidence, incident_details)


FLOW_RULES: List[Tuple[str, Callable]] = [
    ("return_override", _rule_return_override),
    ("chat_detour", _rule_chat_detour),
]


def explain_next_step(
    report_type: Optional[str],
    evidence: Optional[Evidence] = None,
    metadata: Any = None,
    incident_details: Optional[Sequence] = None,
    status: Optional[str] = None,
) -> Tuple[str, str]:
    """Returns (step, name of the rule that decided it)."""
    for name, rule in FLOW_RULES:
        step = rule(report_type, evidence, metadata, incident_details, status)
        if step:
            return step, name
    return _rule_report_type(report_type, evidence, metadata, incident_details, status), "report_type"


def next_step(
    report_type: Optional[str],
    evidence: Optional[Evidence] = None,
    metadata: Any = None,
    incident_details: Optional[Sequence] = None,
    status: Optional[str] = None,
) -> str:
    step, _ = explain_next_step(report_type, evidence, metadata, incident_details, status)
    return step


def next_step_for_report(report) -> str:
    return next_step(
        report.reportType,
        report.evidence,
        report.metadata,
        report.incidentDetails,
        report.status,
    )


# ============================================================
# Wizard host helpers
# ============================================================

def steps_for_type(report_type: Optional[str]) -> Tuple[str, ...]:
    try:
        return STEPS_BY_TYPE[report_type]
    except KeyError:
        raise UnknownReportType(report_type) from None


def first_step(report_type: Optional[str]) -> str:
    return STEPS_BY_TYPE[flow_type(report_type)][0]


def validate_step(report_type: Optional[str], step: Optional[str]) -> str:
    """Canonical step id for `step` (aliases resolved) or InvalidStepForType."""
    ftype = flow_type(report_type)
    canonical = STEP_ALIASES_BY_TYPE.get(ftype, {}).get(step or "", step)
    if canonical not in STEPS_BY_TYPE[ftype]:
        raise InvalidStepForType(report_type, step)
    return canonical


def resolve_requested_step(report_type: Optional[str], requested: Optional[str], status: Optional[str] = None) -> str:
    """
    Step a wizard host should render for a requested step id.
    Chat pseudo-steps stay in the chat while the support window is open;
    anything else outside the type's set redirects to the first step.
    """
    if requested in CHAT_STEPS:
        return STEP_CHAT if status == SUBMITTED else first_step(report_type)
    try:
        return validate_step(report_type, requested)
    except InvalidStepForType:
        return first_step(report_type)


def advance(report_type: Optional[str], step: str, answer: Optional[str] = None) -> str:
    """
    Forward navigation from `step`. Yes/no screens need `answer`.
    Raises InvalidStepForType for a step outside the flow, or for a yes/no
    screen answered with anything else.
    """
    ftype = flow_type(report_type)
    current = validate_step(report_type, step)
    if current == STEP_FINISH:
        return STEP_FINISH
    target = NAVIGATION_BY_TYPE[ftype].get(current)
    if isinstance(target, dict):
        choice = (answer or "").strip().lower()
        if choice not in target:
            raise InvalidStepForType(report_type, f"{current}:{answer}")
        return target[choice]
    if target is None:
        raise InvalidStepForType(report_type, current)
    return target
