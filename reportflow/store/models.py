from dataclasses import dataclass, field
from typing import Any, List, Optional, Dict

from reportflow.core.state_machine import DRAFT, ENTREGA

@dataclass
class IncidentItem:
    productName: str = ""
    quantity: str = ""
    reason: str = ""
    photoRef: Optional[str] = None

@dataclass
class ReportMetadata:
    # Explicit wizard override written when the driver comes back from the support chat
    should_return_to_step: Optional[str] = None
    # Step the driver left to open the support chat; routes back to the chat while submitted
    last_step_before_chat: Optional[str] = None
    # Anything else clients stored on the record (kept, never read by the flow)
    extra: Dict[str, Any] = field(default_factory=dict)

@dataclass
class ReportState:
    # Core identifiers
    reportId: str = ""
    userId: str = ""

    # Routing context captured at creation (store already validated)
    storeCode: str = ""
    storeName: str = ""
    storeZone: str = ""
    driverName: str = ""

    # Lifecycle
    status: str = DRAFT
    reportType: str = ENTREGA

    # Wizard inputs
    evidence: Dict[str, str] = field(default_factory=dict)
    incidentDetails: List[IncidentItem] = field(default_factory=list)
    metadata: ReportMetadata = field(default_factory=ReportMetadata)
    currentStepHint: Optional[str] = None

    # OCR collaborator output (opaque) and the driver's confirmation of it
    ticketData: Optional[Dict[str, Any]] = None
    ticketExtractionConfirmed: bool = False
    returnTicketData: Optional[Dict[str, Any]] = None
    returnTicketExtractionConfirmed: bool = False

    # Closed-store auto-resolution outcome ("no"), set by the timeout sweep
    resolution: Optional[str] = None

    # Timestamps, epoch milliseconds
    createdAt: Optional[int] = None
    submittedAt: Optional[int] = None
    resolvedAt: Optional[int] = None
    timeoutAt: Optional[int] = None

    # Ops
    version: int = 0
    lastUpdatedAtEpoch: Optional[int] = None

    def has_evidence(self, key: str) -> bool:
        return bool((self.evidence or {}).get(key))
