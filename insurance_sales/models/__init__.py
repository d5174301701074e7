"""Data models"""

from insurance_sales.models.sale import (
    SaleStatus,
    AuditStatus,
    UserRole,
    SaleType,
    Actor,
    Client,
    Plan,
    Company,
    Sale,
    Beneficiary,
    InformationRequestStatus,
    InformationRequest,
    Notification,
    ProcessTrace,
)
from insurance_sales.models.health import (
    HealthAnswer,
    HealthHabits,
    HealthDeclaration,
)
from insurance_sales.models.document import (
    DocumentType,
    DocumentStatus,
    GeneratedDocument,
    RecipientType,
    SignatureLinkStatus,
    SignatureLink,
)
from insurance_sales.models.template import (
    TemplateAttachment,
    Template,
    SaleTemplate,
    classify_template_name,
)
from insurance_sales.models.workflow import (
    WorkflowTransition,
    TransitionRule,
    WorkflowConfig,
    PolicyDecision,
    GenerationLease,
)

__all__ = [
    "SaleStatus",
    "AuditStatus",
    "UserRole",
    "SaleType",
    "Actor",
    "Client",
    "Plan",
    "Company",
    "Sale",
    "Beneficiary",
    "InformationRequestStatus",
    "InformationRequest",
    "Notification",
    "ProcessTrace",
    "HealthAnswer",
    "HealthHabits",
    "HealthDeclaration",
    "DocumentType",
    "DocumentStatus",
    "GeneratedDocument",
    "RecipientType",
    "SignatureLinkStatus",
    "SignatureLink",
    "TemplateAttachment",
    "Template",
    "SaleTemplate",
    "classify_template_name",
    "WorkflowTransition",
    "TransitionRule",
    "WorkflowConfig",
    "PolicyDecision",
    "GenerationLease",
]
