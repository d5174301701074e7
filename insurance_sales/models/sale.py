"""Sale, parties and audit models"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    return str(uuid.uuid4())


class SaleStatus(str, Enum):
    """Workflow status of a sale"""
    BORRADOR = "borrador"                                  # draft, editable by salesperson
    PENDIENTE = "pendiente"                                # submitted, waiting for audit
    EN_AUDITORIA = "en_auditoria"                          # auditor picked it up
    APROBADO_PARA_TEMPLATES = "aprobado_para_templates"    # approved, documents can be generated
    RECHAZADO = "rechazado"                                # back to salesperson
    ENVIADO = "enviado"                                    # documents dispatched for signature
    FIRMADO = "firmado"                                    # every signer completed
    COMPLETADO = "completado"                              # closed
    CANCELADO = "cancelado"                                # aborted


class AuditStatus(str, Enum):
    """Auditor verdict, tracked apart from the workflow status"""
    APROBADO = "aprobado"
    RECHAZADO = "rechazado"
    REQUIERE_INFO = "requiere_info"


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    AUDITOR = "auditor"
    GESTOR = "gestor"
    VENDEDOR = "vendedor"
    FINANCIERO = "financiero"
    SYSTEM = "system"   # generation and signature subsystems


class SaleType(str, Enum):
    VENTA_NUEVA = "venta_nueva"
    REINGRESO = "reingreso"


class Actor(BaseModel):
    """Who performs an operation"""
    user_id: str
    role: UserRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id="system", role=UserRole.SYSTEM)


class Client(BaseModel):
    """Policyholder contact record"""
    id: str = Field(default_factory=new_id)
    first_name: str = ""
    last_name: str = ""
    dni: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    province: str = ""
    barrio: str = ""
    postal_code: str = ""
    birth_date: Optional[date] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Plan(BaseModel):
    """Insurance plan sold"""
    id: str = Field(default_factory=new_id)
    name: str
    price: float = 0
    description: str = ""
    coverage_details: Optional[str] = None


class Company(BaseModel):
    """Insurer issuing the documents"""
    id: str = Field(default_factory=new_id)
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    logo_url: str = ""
    primary_color: str = "#3B82F6"
    secondary_color: str = "#1E40AF"


class Sale(BaseModel):
    """The unit of work moving through audit and signature"""
    id: str = Field(default_factory=new_id)
    status: SaleStatus = SaleStatus.BORRADOR
    audit_status: Optional[AuditStatus] = None
    total_amount: float = 0
    client_id: Optional[str] = None
    plan_id: Optional[str] = None
    company_id: Optional[str] = None
    salesperson_id: Optional[str] = None
    salesperson_name: str = ""
    auditor_id: Optional[str] = None
    contract_number: str = ""
    request_number: str = ""
    sale_date: Optional[date] = None
    contract_start_date: Optional[date] = None
    immediate_coverage: bool = False
    sale_type: SaleType = SaleType.VENTA_NUEVA
    billing_razon_social: str = ""
    billing_ruc: str = ""
    billing_email: str = ""
    billing_phone: str = ""
    notes: str = ""
    audit_notes: Optional[str] = None
    audited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Beneficiary(BaseModel):
    """A covered person; the titular carries is_primary=True"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    first_name: str = ""
    last_name: str = ""
    relationship: str = "Titular"
    document_number: str = ""
    birth_date: Optional[date] = None
    gender: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    amount: float = 0
    is_primary: bool = False
    signature_required: Optional[bool] = True
    has_preexisting_conditions: bool = False
    preexisting_conditions_detail: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def requires_signature(self) -> bool:
        # only an explicit False opts out
        return self.signature_required is not False


class InformationRequestStatus(str, Enum):
    PENDIENTE = "pendiente"
    RESPONDIDO = "respondido"


class InformationRequest(BaseModel):
    """Auditor note asking the salesperson for more data"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    request_type: str = "audit"
    description: str
    requested_by: str
    status: InformationRequestStatus = InformationRequestStatus.PENDIENTE
    response: Optional[str] = None
    responded_by: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Notification(BaseModel):
    """In-app message addressed to a user"""
    id: str = Field(default_factory=new_id)
    user_id: str
    title: str
    message: str
    type: str = "info"
    action_url: Optional[str] = None
    metadata: dict = {}
    read: bool = False
    created_at: Optional[datetime] = None


class ProcessTrace(BaseModel):
    """Diagnostic event attached to a sale"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    action: str
    performed_by: Optional[str] = None
    details: dict = {}
    created_at: Optional[datetime] = None
