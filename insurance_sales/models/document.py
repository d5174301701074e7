"""Generated document and signature link models"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from insurance_sales.models.sale import new_id


class DocumentType(str, Enum):
    """Document classification"""
    CONTRATO = "contrato"       # main contract, signable
    DDJJ_SALUD = "ddjj_salud"   # sworn health declaration, one per signer
    ANEXO = "anexo"             # read-only annex


class DocumentStatus(str, Enum):
    PENDIENTE = "pendiente"
    FIRMADO = "firmado"


class GeneratedDocument(BaseModel):
    """A materialized document belonging to a sale"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    template_id: Optional[str] = None
    name: str
    document_type: DocumentType
    content: Optional[str] = None
    file_url: Optional[str] = None
    requires_signature: bool = True
    is_final: bool = False
    generated_from_template: bool = True
    beneficiary_id: Optional[str] = None   # None = titular / shared document
    status: DocumentStatus = DocumentStatus.PENDIENTE
    metadata: dict = {}
    signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_protected(self) -> bool:
        """Signed or final documents survive regeneration"""
        return self.status == DocumentStatus.FIRMADO or self.is_final


class RecipientType(str, Enum):
    TITULAR = "titular"
    ADHERENTE = "adherente"


class SignatureLinkStatus(str, Enum):
    PENDIENTE = "pendiente"
    VISUALIZADO = "visualizado"
    COMPLETADO = "completado"
    REVOCADO = "revocado"


class SignatureLink(BaseModel):
    """Tokenized link a signer uses to sign their documents"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    token: str = Field(default_factory=new_id)
    recipient_type: RecipientType
    recipient_email: str = ""
    recipient_phone: Optional[str] = None
    recipient_id: Optional[str] = None
    expires_at: datetime
    status: SignatureLinkStatus = SignatureLinkStatus.PENDIENTE
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in (SignatureLinkStatus.PENDIENTE, SignatureLinkStatus.VISUALIZADO)
