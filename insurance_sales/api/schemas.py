"""Request/response schemas for the sales API"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from insurance_sales.models import (
    DocumentStatus,
    DocumentType,
    GeneratedDocument,
    InformationRequest,
    Sale,
    SignatureLink,
    WorkflowTransition,
)


class NotesRequest(BaseModel):
    """Auditor decision payload"""
    notes: Optional[str] = Field(None, max_length=2000)


class SubmitRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class RespondRequest(BaseModel):
    response: str = Field(..., min_length=1, max_length=4000)


class SignatureCompleteRequest(BaseModel):
    signed_ip: Optional[str] = None


class SaleResponse(BaseModel):
    """Current workflow state of a sale"""
    id: str
    status: str
    audit_status: Optional[str] = None
    audit_notes: Optional[str] = None
    contract_start_date: Optional[date] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_sale(cls, sale: Sale) -> "SaleResponse":
        return cls(
            id=sale.id,
            status=sale.status.value,
            audit_status=sale.audit_status.value if sale.audit_status else None,
            audit_notes=sale.audit_notes,
            contract_start_date=sale.contract_start_date,
            updated_at=sale.updated_at,
        )


class TransitionItem(BaseModel):
    previous_status: Optional[str] = None
    new_status: str
    changed_by: str
    change_reason: str
    metadata: dict = {}
    created_at: Optional[datetime] = None

    @classmethod
    def from_transition(cls, t: WorkflowTransition) -> "TransitionItem":
        return cls(
            previous_status=t.previous_status.value if t.previous_status else None,
            new_status=t.new_status.value,
            changed_by=t.changed_by,
            change_reason=t.change_reason,
            metadata=t.metadata,
            created_at=t.created_at,
        )


class HistoryResponse(BaseModel):
    sale_id: str
    transitions: List[TransitionItem] = []


class InformationRequestResponse(BaseModel):
    id: str
    sale_id: str
    description: str
    status: str
    response: Optional[str] = None

    @classmethod
    def from_request(cls, r: InformationRequest) -> "InformationRequestResponse":
        return cls(
            id=r.id,
            sale_id=r.sale_id,
            description=r.description,
            status=r.status.value,
            response=r.response,
        )


class DocumentItem(BaseModel):
    """A generated document without its body"""
    id: str
    name: str
    document_type: DocumentType
    status: DocumentStatus
    requires_signature: bool
    is_final: bool
    beneficiary_id: Optional[str] = None
    has_file: bool = False

    @classmethod
    def from_document(cls, d: GeneratedDocument) -> "DocumentItem":
        return cls(
            id=d.id,
            name=d.name,
            document_type=d.document_type,
            status=d.status,
            requires_signature=d.requires_signature,
            is_final=d.is_final,
            beneficiary_id=d.beneficiary_id,
            has_file=bool(d.file_url),
        )


class DocumentsResponse(BaseModel):
    sale_id: str
    documents: List[DocumentItem] = []


class LinkItem(BaseModel):
    id: str
    recipient_type: str
    recipient_email: str = ""
    url: str
    status: str
    expires_at: datetime

    @classmethod
    def from_link(cls, link: SignatureLink, url: str) -> "LinkItem":
        return cls(
            id=link.id,
            recipient_type=link.recipient_type.value,
            recipient_email=link.recipient_email,
            url=url,
            status=link.status.value,
            expires_at=link.expires_at,
        )


class GenerationResponse(BaseModel):
    """Outcome of generate/regenerate"""
    sale_id: str
    status: Optional[str] = None
    documents: List[DocumentItem] = []
    signature_links: List[LinkItem] = []
    deleted: int = 0
    preserved: int = 0
    unresolved: Dict[str, List[str]] = {}
    warnings: List[str] = []


class DownloadResponse(BaseModel):
    document_id: str
    url: str


class ErrorResponse(BaseModel):
    detail: str
    reasons: List[str] = []
    documents_created: Optional[int] = None
