"""Sale data mutations guarded by the workflow state"""

import logging
from typing import List

from insurance_sales.db.base import DatabaseInterface
from insurance_sales.models import (
    Actor,
    Beneficiary,
    HealthDeclaration,
    Sale,
    SaleStatus,
    SaleTemplate,
)
from insurance_sales.services import health_declaration
from insurance_sales.services.errors import AuthorizationError, SaleNotFoundError, SaleValidationError
from insurance_sales.services.workflow import (
    AUDIT_ROLES,
    ELEVATED_ROLES,
    SALESPERSON_ROLES,
    TERMINAL_STATUSES,
    SaleWorkflowService,
)

logger = logging.getLogger(__name__)

# Only the state machine writes these
WORKFLOW_FIELDS = {
    "id", "status", "audit_status", "auditor_id", "audited_at", "audit_notes",
    "contract_start_date", "created_at", "updated_at",
}

DECLARATION_CLOSED = TERMINAL_STATUSES | {SaleStatus.FIRMADO}


class SaleService:
    """Create and edit sales, beneficiaries and template selection."""

    def __init__(self, db: DatabaseInterface, workflow: SaleWorkflowService):
        self.db = db
        self.workflow = workflow

    async def create_sale(self, actor: Actor, **fields) -> Sale:
        if actor.role not in SALESPERSON_ROLES | ELEVATED_ROLES:
            raise AuthorizationError(f'El rol "{actor.role.value}" no puede crear ventas')
        blocked = WORKFLOW_FIELDS & fields.keys()
        if blocked:
            raise SaleValidationError(f"Campos no editables: {', '.join(sorted(blocked))}")
        fields.setdefault("salesperson_id", actor.user_id)
        sale = await self.db.insert_sale(Sale(**fields))
        logger.info(f"Created draft sale {sale.id} for {sale.salesperson_id}")
        return sale

    async def update_sale(self, sale_id: str, actor: Actor, fields: dict) -> Sale:
        blocked = WORKFLOW_FIELDS & fields.keys()
        if blocked:
            raise SaleValidationError(f"Campos no editables: {', '.join(sorted(blocked))}")
        sale = await self.workflow.get_sale(sale_id)
        self.workflow.ensure_editable(sale, actor)
        return await self.db.update_sale(sale_id, fields)

    async def add_beneficiary(self, sale_id: str, actor: Actor, beneficiary: Beneficiary) -> Beneficiary:
        sale = await self.workflow.get_sale(sale_id)
        self.workflow.ensure_editable(sale, actor)
        if beneficiary.sale_id != sale_id:
            beneficiary = beneficiary.model_copy(update={"sale_id": sale_id})
        if beneficiary.is_primary:
            existing = await self.db.list_beneficiaries(sale_id)
            if any(b.is_primary for b in existing):
                logger.warning(f"Sale {sale_id} already has a titular; adding another primary beneficiary")
        return await self.db.insert_beneficiary(beneficiary)

    async def update_beneficiary(self, beneficiary_id: str, actor: Actor, fields: dict) -> Beneficiary:
        beneficiary = await self._get_beneficiary(beneficiary_id)
        sale = await self.workflow.get_sale(beneficiary.sale_id)
        self.workflow.ensure_editable(sale, actor)
        fields = {k: v for k, v in fields.items() if k not in ("id", "sale_id")}
        return await self.db.update_beneficiary(beneficiary_id, fields)

    async def remove_beneficiary(self, beneficiary_id: str, actor: Actor) -> None:
        beneficiary = await self._get_beneficiary(beneficiary_id)
        sale = await self.workflow.get_sale(beneficiary.sale_id)
        self.workflow.ensure_editable(sale, actor)
        await self.db.delete_beneficiary(beneficiary_id)
        logger.info(f"Removed beneficiary {beneficiary_id} from sale {sale.id}")

    async def assign_template(self, sale_id: str, actor: Actor, template_id: str) -> SaleTemplate:
        """Select a template for the sale's document set.

        Auditors may adjust the selection during review; everyone else needs an
        editable sale.
        """
        sale = await self.workflow.get_sale(sale_id)
        if actor.role in AUDIT_ROLES:
            if sale.status in TERMINAL_STATUSES:
                raise AuthorizationError(f"La venta {sale.id} está cerrada ({sale.status.value})")
        else:
            self.workflow.ensure_editable(sale, actor)
        current = await self.db.list_sale_templates(sale_id)
        if any(t.id == template_id for t in current):
            raise SaleValidationError("El template ya está asignado a la venta")
        return await self.db.add_sale_template(sale_id, template_id)

    async def list_beneficiaries(self, sale_id: str) -> List[Beneficiary]:
        await self.workflow.get_sale(sale_id)
        return await self.db.list_beneficiaries(sale_id)

    # ---- Health declaration (declarant step) ----

    async def record_health_declaration(
        self, beneficiary_id: str, declaration: HealthDeclaration
    ) -> Beneficiary:
        """Store a beneficiary's questionnaire in its single text column."""
        beneficiary = await self._get_beneficiary(beneficiary_id)
        sale = await self.workflow.get_sale(beneficiary.sale_id)
        if sale.status in DECLARATION_CLOSED:
            raise SaleValidationError(
                f"La declaración de salud no se puede modificar en estado '{sale.status.value}'"
            )
        return await self.db.update_beneficiary(beneficiary_id, {
            "preexisting_conditions_detail": health_declaration.encode(declaration),
            "has_preexisting_conditions": declaration.has_preexisting_conditions,
        })

    async def get_health_declaration(self, beneficiary_id: str) -> HealthDeclaration:
        beneficiary = await self._get_beneficiary(beneficiary_id)
        return health_declaration.decode(beneficiary.preexisting_conditions_detail)

    async def _get_beneficiary(self, beneficiary_id: str) -> Beneficiary:
        beneficiary = await self.db.get_beneficiary(beneficiary_id)
        if beneficiary is None:
            raise SaleNotFoundError(f"Beneficiario no encontrado: {beneficiary_id}")
        return beneficiary
