"""Company-configurable transition policy.

Consulted at the generation -> 'enviado' boundary. Companies without a
configuration, or with an inactive one, are not restricted.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from insurance_sales.db.base import DatabaseInterface
from insurance_sales.models import (
    AuditStatus,
    DocumentType,
    PolicyDecision,
    Sale,
    SaleStatus,
    SignatureLinkStatus,
    TransitionRule,
    UserRole,
    WorkflowConfig,
)

logger = logging.getLogger(__name__)

S = SaleStatus
R = UserRole

# Reference configuration offered to companies that enable the policy
DEFAULT_WORKFLOW_RULES: List[TransitionRule] = [
    TransitionRule(
        from_status=S.BORRADOR, to_status=S.PENDIENTE,
        allowed_roles=[R.VENDEDOR, R.GESTOR, R.ADMIN, R.SUPER_ADMIN],
        conditions=["has_client", "has_plan"],
    ),
    TransitionRule(
        from_status=S.PENDIENTE, to_status=S.APROBADO_PARA_TEMPLATES,
        allowed_roles=[R.AUDITOR, R.ADMIN, R.SUPER_ADMIN],
    ),
    TransitionRule(
        from_status=S.PENDIENTE, to_status=S.RECHAZADO,
        allowed_roles=[R.AUDITOR, R.ADMIN, R.SUPER_ADMIN],
        require_note=True,
    ),
    TransitionRule(
        from_status=S.RECHAZADO, to_status=S.PENDIENTE,
        allowed_roles=[R.VENDEDOR, R.GESTOR, R.ADMIN, R.SUPER_ADMIN],
    ),
    TransitionRule(
        from_status=S.APROBADO_PARA_TEMPLATES, to_status=S.ENVIADO,
        allowed_roles=[R.AUDITOR, R.ADMIN, R.SUPER_ADMIN, R.SYSTEM],
        conditions=["has_documents", "has_signature_token"],
    ),
    TransitionRule(
        from_status=S.ENVIADO, to_status=S.FIRMADO,
        allowed_roles=[R.SYSTEM, R.ADMIN, R.SUPER_ADMIN],
        conditions=["all_signatures_complete"],
    ),
]

CONDITION_MESSAGES: Dict[str, str] = {
    "has_client": "La venta no tiene cliente asignado",
    "has_plan": "La venta no tiene plan asignado",
    "has_beneficiaries": "La venta no tiene beneficiarios",
    "has_documents": "La venta no tiene documentos generados",
    "has_template": "La venta no tiene templates asignados",
    "has_ddjj": "Falta la declaración jurada de salud",
    "audit_approved": "La venta no está aprobada por auditoría",
    "all_signatures_complete": "Hay firmas pendientes",
    "has_signature_token": "No hay enlaces de firma generados",
}


def default_workflow_config(company_id: str) -> WorkflowConfig:
    return WorkflowConfig(company_id=company_id, transitions=list(DEFAULT_WORKFLOW_RULES))


class TransitionPolicyChecker:
    """Evaluates a company's transition rules for a sale."""

    def __init__(self, db: DatabaseInterface):
        self.db = db

    async def check(
        self,
        sale: Sale,
        target_status: SaleStatus,
        role: UserRole,
        note: Optional[str] = None,
    ) -> PolicyDecision:
        """Return allow/deny with every failing reason."""
        if not sale.company_id:
            return PolicyDecision(allowed=True)
        config = await self.db.get_workflow_config(sale.company_id)
        if config is None or not config.is_active:
            return PolicyDecision(allowed=True)

        rule = config.find_rule(sale.status, target_status)
        if rule is None:
            return PolicyDecision(allowed=False, reasons=["Transicion no permitida en la configuracion"])

        reasons: List[str] = []
        if rule.allowed_roles and role not in rule.allowed_roles:
            reasons.append(f'El rol "{role.value}" no puede realizar esta transicion')

        checks = self._condition_checks(sale)
        for condition in rule.conditions:
            check = checks.get(condition)
            if check is None:
                logger.warning(f"Unknown workflow condition '{condition}' for company {sale.company_id}")
                continue
            if not await check():
                reasons.append(CONDITION_MESSAGES[condition])

        if rule.require_note and not (note and note.strip()):
            reasons.append("Esta transicion requiere una nota")

        if reasons:
            logger.info(f"Policy denied {sale.status.value} -> {target_status.value} for sale {sale.id}: {reasons}")
        return PolicyDecision(allowed=not reasons, reasons=reasons)

    def _condition_checks(self, sale: Sale) -> Dict[str, Callable[[], Awaitable[bool]]]:
        db = self.db

        async def has_beneficiaries() -> bool:
            return bool(await db.list_beneficiaries(sale.id))

        async def has_documents() -> bool:
            return bool(await db.list_documents(sale.id))

        async def has_template() -> bool:
            return bool(await db.list_sale_templates(sale.id))

        async def has_ddjj() -> bool:
            docs = await db.list_documents(sale.id)
            return any(d.document_type == DocumentType.DDJJ_SALUD for d in docs)

        async def all_signatures_complete() -> bool:
            links = [
                l for l in await db.list_signature_links(sale.id)
                if l.status != SignatureLinkStatus.REVOCADO
            ]
            return bool(links) and all(l.status == SignatureLinkStatus.COMPLETADO for l in links)

        async def has_signature_token() -> bool:
            links = await db.list_signature_links(sale.id)
            return any(l.is_active for l in links)

        async def has_client() -> bool:
            return bool(sale.client_id)

        async def has_plan() -> bool:
            return bool(sale.plan_id)

        async def audit_approved() -> bool:
            return sale.audit_status == AuditStatus.APROBADO

        return {
            "has_client": has_client,
            "has_plan": has_plan,
            "has_beneficiaries": has_beneficiaries,
            "has_documents": has_documents,
            "has_template": has_template,
            "has_ddjj": has_ddjj,
            "audit_approved": audit_approved,
            "all_signatures_complete": all_signatures_complete,
            "has_signature_token": has_signature_token,
        }
