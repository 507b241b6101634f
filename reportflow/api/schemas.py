from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

Answer = Literal["yes", "no"]
TicketKind = Literal["ticket", "return_ticket"]

class CreateReportRequest(BaseModel):
    userId: str = Field(min_length=1)
    reportType: str
    storeCode: str = ""
    storeName: str = ""
    storeZone: str = ""
    driverName: str = ""

class EvidenceRequest(BaseModel):
    # Reference returned by the evidence store for the uploaded image
    ref: str = Field(min_length=1)

class IncidentItemIn(BaseModel):
    productName: str = Field(min_length=1)
    quantity: str = Field(min_length=1)
    reason: str = ""
    photoRef: Optional[str] = None

class IncidentsRequest(BaseModel):
    items: List[IncidentItemIn] = Field(default_factory=list)

class TicketExtractionRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)

class NavigateRequest(BaseModel):
    step: str
    answer: Optional[Answer] = None

class EnterChatRequest(BaseModel):
    fromStep: str

class LeaveChatRequest(BaseModel):
    returnTo: Optional[str] = None

class ChatMessageRequest(BaseModel):
    text: str = Field(min_length=1)

class ReportView(BaseModel):
    reportId: str
    status: str
    reportType: str
    storeCode: str
    storeName: str
    storeZone: str
    evidenceKeys: List[str]
    incidentCount: int
    ticketExtractionConfirmed: bool
    returnTicketExtractionConfirmed: bool
    resolution: Optional[str] = None
    createdAt: Optional[str] = None
    submittedAt: Optional[str] = None
    resolvedAt: Optional[str] = None
    timeoutAt: Optional[str] = None
    expired: bool
    timeRemaining: Optional[str] = None
    step: str
    validEvents: List[str]
    version: int

class FlowView(BaseModel):
    reportId: str
    step: str
    requested: Optional[str] = None
    redirected: bool
    validSteps: List[str]

class NavigateResponse(BaseModel):
    reportId: str
    step: str

class ErrorResponse(BaseModel):
    error: str
    detail: str
    context: Dict[str, Any] = Field(default_factory=dict)
