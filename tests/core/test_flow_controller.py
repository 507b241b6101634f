from itertools import combinations

import pytest

from reportflow.core import flow_controller as flow
from reportflow.core.errors import InvalidStepForType, UnknownReportType
from reportflow.core.flow_constants import STEPS_BY_TYPE
from reportflow.core.state_machine import (
    BASCULA,
    COMPLETED,
    DRAFT,
    ENTREGA,
    SUBMITTED,
    TIENDA_CERRADA,
)
from reportflow.store.models import IncidentItem, ReportMetadata

ENTREGA_KEYS = ("arrival_exhibit", "product_arranged", "waste_evidence", "remission", "ticket", "return_ticket")


def _ev(*keys):
    return {k: f"ref-{k}" for k in keys}


def test_new_entrega_starts_at_arrival():
    assert flow.next_step(ENTREGA, {}, None, [], DRAFT) == "4a"


def test_arrival_without_incidents_asks_incident_check():
    assert flow.next_step(ENTREGA, _ev("arrival_exhibit"), None, [], DRAFT) == "incident_check"


def test_arrival_with_incidents_goes_to_product_photo():
    items = [IncidentItem(productName="Leche", quantity="2", reason="dañado")]
    assert flow.next_step(ENTREGA, _ev("arrival_exhibit"), None, items, DRAFT) == "6"


@pytest.mark.parametrize("status", [DRAFT, SUBMITTED, COMPLETED])
def test_closed_store_with_facade_finishes(status):
    assert flow.next_step(TIENDA_CERRADA, _ev("facade"), None, [], status) == "finish"


def test_closed_store_without_facade():
    assert flow.next_step(TIENDA_CERRADA, {}, None, [], DRAFT) == "4b"


def test_scale_branch():
    assert flow.next_step(BASCULA, {}, None, [], DRAFT) == "4c"
    assert flow.next_step(BASCULA, _ev("scale"), None, [], DRAFT) == "finish"


@pytest.mark.parametrize("evidence,expected", [
    (_ev("arrival_exhibit", "product_arranged"), "waste_check"),
    (_ev("arrival_exhibit", "product_arranged", "waste_evidence"), "8"),
    (_ev("arrival_exhibit", "product_arranged", "remission"), "8"),
    (_ev("arrival_exhibit", "product_arranged", "remission", "ticket"), "return_check"),
    (_ev(*ENTREGA_KEYS), "11"),
])
def test_entrega_ladder(evidence, expected):
    assert flow.next_step(ENTREGA, evidence, None, [], DRAFT) == expected


def test_empty_evidence_value_is_not_present():
    assert flow.next_step(ENTREGA, {"arrival_exhibit": ""}, None, [], DRAFT) == "4a"


def test_return_override_wins_over_everything():
    meta = ReportMetadata(should_return_to_step="8", last_step_before_chat="6")
    step, rule = flow.explain_next_step(ENTREGA, _ev(*ENTREGA_KEYS), meta, [], SUBMITTED)
    assert (step, rule) == ("8", "return_override")


def test_chat_detour_only_while_submitted():
    meta = ReportMetadata(last_step_before_chat="4b")
    assert flow.explain_next_step(TIENDA_CERRADA, {}, meta, [], SUBMITTED) == ("4b", "chat_detour")
    assert flow.explain_next_step(TIENDA_CERRADA, _ev("facade"), meta, [], DRAFT) == ("finish", "report_type")


def test_metadata_as_plain_mapping():
    assert flow.next_step(ENTREGA, {}, {"should_return_to_step": "9"}, [], DRAFT) == "9"
    assert flow.next_step(ENTREGA, {}, {"should_return_to_step": ""}, [], DRAFT) == "4a"


def test_legacy_type_falls_back_to_entrega():
    assert flow.next_step("devolucion", {}, None, [], DRAFT) == "4a"
    assert flow.next_step(None, _ev("arrival_exhibit"), None, [], DRAFT) == "incident_check"
    with pytest.raises(UnknownReportType):
        flow.branch_for("devolucion")


def test_deterministic_and_inputs_untouched():
    evidence = _ev("arrival_exhibit", "product_arranged")
    meta = {"last_step_before_chat": "6"}
    items = [IncidentItem(productName="Pan", quantity="1")]
    first = flow.next_step(ENTREGA, evidence, meta, items, SUBMITTED)
    for _ in range(5):
        assert flow.next_step(ENTREGA, evidence, meta, items, SUBMITTED) == first
    assert evidence == _ev("arrival_exhibit", "product_arranged")
    assert meta == {"last_step_before_chat": "6"}
    assert len(items) == 1


@pytest.mark.parametrize("with_incidents", [False, True])
def test_entrega_is_monotonic_in_evidence(with_incidents):
    order = STEPS_BY_TYPE[ENTREGA]
    items = [IncidentItem(productName="Pan", quantity="1")] if with_incidents else []
    subsets = [set(c) for n in range(len(ENTREGA_KEYS) + 1) for c in combinations(ENTREGA_KEYS, n)]
    for smaller in subsets:
        before = order.index(flow.next_step(ENTREGA, _ev(*smaller), None, items, DRAFT))
        for larger in subsets:
            if smaller <= larger:
                after = order.index(flow.next_step(ENTREGA, _ev(*larger), None, items, DRAFT))
                assert after >= before, (smaller, larger)


def test_later_evidence_without_incidents_reprompts_incident_check():
    # Imported record: product photo missing, later evidence present, no incidents
    evidence = _ev("arrival_exhibit", "ticket", "remission")
    assert flow.next_step(ENTREGA, evidence, None, [], DRAFT) == "incident_check"


def test_validate_step_resolves_aliases():
    assert flow.validate_step(ENTREGA, "ticket") == "8"
    assert flow.validate_step(TIENDA_CERRADA, "facade") == "4b"
    assert flow.validate_step(ENTREGA, "waste_check") == "waste_check"
    with pytest.raises(InvalidStepForType):
        flow.validate_step(TIENDA_CERRADA, "8")


def test_resolve_requested_step_redirects_invalid():
    assert flow.resolve_requested_step(TIENDA_CERRADA, "8") == "4b"
    assert flow.resolve_requested_step(BASCULA, "nonsense") == "4c"
    assert flow.resolve_requested_step("faltante", "4b") == "4a"
    assert flow.resolve_requested_step(ENTREGA, "6") == "6"


def test_resolve_requested_chat_step():
    assert flow.resolve_requested_step(TIENDA_CERRADA, "chat_redirect", SUBMITTED) == "chat"
    assert flow.resolve_requested_step(TIENDA_CERRADA, "chat", DRAFT) == "4b"


def test_steps_for_type():
    assert flow.steps_for_type(BASCULA) == ("4c", "finish")
    with pytest.raises(UnknownReportType):
        flow.steps_for_type("sobrante")
    assert flow.first_step("sobrante") == "4a"


@pytest.mark.parametrize("report_type,step,answer,expected", [
    (ENTREGA, "4a", None, "incident_check"),
    (ENTREGA, "incident_check", "yes", "5"),
    (ENTREGA, "incident_check", "no", "6"),
    (ENTREGA, "waste_check", "YES", "7a"),
    (ENTREGA, "waste_check", "no", "7b"),
    (ENTREGA, "7a", None, "8"),
    (ENTREGA, "return_check", "no", "finish"),
    (ENTREGA, "return_check", "yes", "10"),
    (ENTREGA, "11", None, "finish"),
    (TIENDA_CERRADA, "4b", None, "chat_redirect"),
    (BASCULA, "scale", None, "finish"),
    (BASCULA, "finish", None, "finish"),
])
def test_advance(report_type, step, answer, expected):
    assert flow.advance(report_type, step, answer) == expected


def test_advance_rejects_missing_answer_and_foreign_step():
    with pytest.raises(InvalidStepForType):
        flow.advance(ENTREGA, "incident_check")
    with pytest.raises(InvalidStepForType):
        flow.advance(ENTREGA, "incident_check", "maybe")
    with pytest.raises(InvalidStepForType):
        flow.advance(BASCULA, "4a")


def test_report_type_decides_when_no_override_applies():
    assert flow.explain_next_step("rechazo_parcial", {}, ReportMetadata(), [], DRAFT) == ("4a", "report_type")
    meta = ReportMetadata(last_step_before_chat="8")
    assert flow.explain_next_step(ENTREGA, _ev("arrival_exhibit"), meta, [], COMPLETED) == ("incident_check", "report_type")
