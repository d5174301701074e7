"""Sale workflow state machine.

Every status change goes through `_transition`, which applies the new status
to the sale row and appends a history record to `sale_workflow_states`.
Rejection and information requests both land on `rechazado`; they are told
apart by audit_status and by the `action` stored in the history metadata.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from insurance_sales.db.base import DatabaseInterface
from insurance_sales.models import (
    Actor,
    AuditStatus,
    InformationRequest,
    InformationRequestStatus,
    Sale,
    SaleStatus,
    UserRole,
    WorkflowTransition,
)
from insurance_sales.services.errors import (
    AuthorizationError,
    SaleNotFoundError,
    SaleValidationError,
    TransitionNotAllowedError,
)
from insurance_sales.services.notifications import NotificationService
from insurance_sales.utils.formatting import first_day_of_month

logger = logging.getLogger(__name__)

S = SaleStatus

SUBMIT = "submit"
START_REVIEW = "start_review"
APPROVE = "approve"
REJECT = "reject"
REQUEST_INFO = "request_info"
SEND = "send"
SIGN = "sign"
COMPLETE = "complete"
CANCEL = "cancel"

TRANSITION_MAP: Dict[Tuple[SaleStatus, str], SaleStatus] = {
    (S.BORRADOR, SUBMIT): S.PENDIENTE,
    (S.RECHAZADO, SUBMIT): S.PENDIENTE,
    (S.PENDIENTE, START_REVIEW): S.EN_AUDITORIA,
    (S.PENDIENTE, APPROVE): S.APROBADO_PARA_TEMPLATES,
    (S.EN_AUDITORIA, APPROVE): S.APROBADO_PARA_TEMPLATES,
    (S.APROBADO_PARA_TEMPLATES, APPROVE): S.APROBADO_PARA_TEMPLATES,
    (S.PENDIENTE, REJECT): S.RECHAZADO,
    (S.EN_AUDITORIA, REJECT): S.RECHAZADO,
    (S.PENDIENTE, REQUEST_INFO): S.RECHAZADO,
    (S.EN_AUDITORIA, REQUEST_INFO): S.RECHAZADO,
    (S.APROBADO_PARA_TEMPLATES, SEND): S.ENVIADO,
    (S.ENVIADO, SIGN): S.FIRMADO,
    (S.FIRMADO, COMPLETE): S.COMPLETADO,
    (S.BORRADOR, CANCEL): S.CANCELADO,
    (S.PENDIENTE, CANCEL): S.CANCELADO,
    (S.EN_AUDITORIA, CANCEL): S.CANCELADO,
    (S.RECHAZADO, CANCEL): S.CANCELADO,
    (S.APROBADO_PARA_TEMPLATES, CANCEL): S.CANCELADO,
    (S.ENVIADO, CANCEL): S.CANCELADO,
}

ELEVATED_ROLES: FrozenSet[UserRole] = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN})
SALESPERSON_ROLES: FrozenSet[UserRole] = frozenset({UserRole.VENDEDOR, UserRole.GESTOR})
AUDIT_ROLES: FrozenSet[UserRole] = frozenset({UserRole.AUDITOR}) | ELEVATED_ROLES

ACTION_ROLES: Dict[str, FrozenSet[UserRole]] = {
    SUBMIT: SALESPERSON_ROLES | ELEVATED_ROLES,
    START_REVIEW: AUDIT_ROLES,
    APPROVE: AUDIT_ROLES,
    REJECT: AUDIT_ROLES,
    REQUEST_INFO: AUDIT_ROLES,
    SEND: frozenset({UserRole.SYSTEM}),
    SIGN: frozenset({UserRole.SYSTEM}),
    COMPLETE: AUDIT_ROLES | {UserRole.SUPERVISOR, UserRole.FINANCIERO},
    CANCEL: SALESPERSON_ROLES | ELEVATED_ROLES | {UserRole.SUPERVISOR},
}

EDITABLE_STATUSES: FrozenSet[SaleStatus] = frozenset({S.BORRADOR, S.RECHAZADO})
TERMINAL_STATUSES: FrozenSet[SaleStatus] = frozenset({S.COMPLETADO, S.CANCELADO})

DEFAULT_APPROVAL_NOTE = "Aprobado sin observaciones"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def allowed_from(action: str) -> Set[str]:
    """Statuses from which an action is legal"""
    return {status.value for (status, name) in TRANSITION_MAP if name == action}


class SaleWorkflowService:
    """Enforces legal transitions and who may perform them."""

    def __init__(
        self,
        db: DatabaseInterface,
        notifications: NotificationService,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.db = db
        self.notifications = notifications
        self.clock = clock

    # ---- Guards ----

    async def get_sale(self, sale_id: str) -> Sale:
        sale = await self.db.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError(f"Venta no encontrada: {sale_id}")
        return sale

    def authorize(self, sale: Sale, action: str, actor: Actor) -> None:
        """Raise AuthorizationError unless actor may perform action on sale."""
        roles = ACTION_ROLES.get(action, frozenset())
        if actor.role not in roles:
            raise AuthorizationError(
                f'El rol "{actor.role.value}" no puede realizar la acción "{action}"',
                allowed_from(action),
            )
        if actor.role in SALESPERSON_ROLES:
            self._check_owner(sale, actor)
            if action == CANCEL and sale.status not in EDITABLE_STATUSES:
                raise AuthorizationError(
                    "El vendedor solo puede cancelar ventas editables",
                    {s.value for s in EDITABLE_STATUSES},
                )

    def ensure_editable(self, sale: Sale, actor: Actor) -> None:
        """Guard for data mutations (sale fields, beneficiaries, templates)."""
        if actor.role in ELEVATED_ROLES:
            if sale.status in TERMINAL_STATUSES:
                raise AuthorizationError(f"La venta {sale.id} está cerrada ({sale.status.value})")
            return
        if actor.role not in SALESPERSON_ROLES:
            raise AuthorizationError(f'El rol "{actor.role.value}" no puede modificar la venta')
        self._check_owner(sale, actor)
        if sale.status not in EDITABLE_STATUSES:
            raise AuthorizationError(
                f"La venta no se puede modificar en estado '{sale.status.value}'",
                {s.value for s in EDITABLE_STATUSES},
            )

    @staticmethod
    def _check_owner(sale: Sale, actor: Actor) -> None:
        if sale.salesperson_id and sale.salesperson_id != actor.user_id:
            raise AuthorizationError("La venta no está asignada a este vendedor")

    # ---- Core transition ----

    async def _transition(
        self,
        sale: Sale,
        action: str,
        actor: Actor,
        reason: str,
        fields: Optional[dict] = None,
        metadata: Optional[dict] = None,
    ) -> Sale:
        next_status = TRANSITION_MAP.get((sale.status, action))
        if next_status is None:
            raise TransitionNotAllowedError(sale.id, sale.status.value, action)

        updated = await self.db.update_sale(sale.id, {**(fields or {}), "status": next_status})
        await self.db.insert_transition(WorkflowTransition(
            sale_id=sale.id,
            previous_status=sale.status,
            new_status=next_status,
            changed_by=actor.user_id,
            change_reason=reason,
            metadata={"action": action, "role": actor.role.value, **(metadata or {})},
        ))
        logger.info(
            f"Sale {sale.id}: {sale.status.value} -> {next_status.value} ({action} by {actor.user_id})"
        )
        return updated

    def _require_transition(self, sale: Sale, action: str) -> None:
        if (sale.status, action) not in TRANSITION_MAP:
            raise TransitionNotAllowedError(sale.id, sale.status.value, action)

    # ---- Salesperson actions ----

    async def submit(self, sale_id: str, actor: Actor, note: Optional[str] = None) -> Sale:
        """Send a draft or rejected sale to audit."""
        sale = await self.get_sale(sale_id)
        self.authorize(sale, SUBMIT, actor)
        self._require_transition(sale, SUBMIT)

        missing = [name for name, value in (("cliente", sale.client_id), ("plan", sale.plan_id)) if not value]
        if missing:
            raise SaleValidationError(f"La venta debe tener {' y '.join(missing)} asignado")

        pending = await self.db.list_information_requests(sale_id, InformationRequestStatus.PENDIENTE.value)
        if pending:
            raise SaleValidationError(
                f"La venta tiene {len(pending)} solicitud(es) de información sin responder"
            )

        resubmission = sale.status == S.RECHAZADO
        reason = "Reenviado a auditoría" if resubmission else "Enviado a auditoría"
        if note:
            reason = f"{reason}: {note}"
        return await self._transition(
            sale, SUBMIT, actor, reason,
            fields={"audit_status": None},
            metadata={"resubmission": resubmission},
        )

    async def respond_information_request(
        self, request_id: str, actor: Actor, response: str
    ) -> InformationRequest:
        """Answer an auditor's information request."""
        if not response or not response.strip():
            raise SaleValidationError("Debe ingresar una respuesta")
        request = await self.db.get_information_request(request_id)
        if request is None:
            raise SaleNotFoundError(f"Solicitud de información no encontrada: {request_id}")
        if request.status != InformationRequestStatus.PENDIENTE:
            raise SaleValidationError("La solicitud ya fue respondida")

        sale = await self.get_sale(request.sale_id)
        if actor.role not in SALESPERSON_ROLES | ELEVATED_ROLES:
            raise AuthorizationError(f'El rol "{actor.role.value}" no puede responder solicitudes')
        if actor.role in SALESPERSON_ROLES:
            self._check_owner(sale, actor)

        updated = await self.db.update_information_request(request_id, {
            "status": InformationRequestStatus.RESPONDIDO,
            "response": response.strip(),
            "responded_by": actor.user_id,
            "responded_at": self.clock(),
        })
        logger.info(f"Information request {request_id} answered for sale {sale.id}")
        await self.notifications.notify(
            request.requested_by,
            "Solicitud de información respondida",
            f"El vendedor respondió la solicitud sobre la venta {sale.contract_number or sale.id}",
            category="audit",
            action_url=f"/auditoria/{sale.id}",
        )
        return updated

    # ---- Auditor actions ----

    async def start_review(self, sale_id: str, actor: Actor) -> Sale:
        sale = await self.get_sale(sale_id)
        self.authorize(sale, START_REVIEW, actor)
        return await self._transition(
            sale, START_REVIEW, actor, "Auditoría iniciada", fields={"auditor_id": actor.user_id}
        )

    async def approve(self, sale_id: str, actor: Actor, notes: Optional[str] = None) -> Sale:
        """Approve the sale for document generation.

        Sets the contract start date to the first day of the approval month.
        Re-approving only refreshes audit metadata; generation is a separate step.
        """
        sale = await self.get_sale(sale_id)
        self.authorize(sale, APPROVE, actor)
        self._require_transition(sale, APPROVE)

        now = self.clock()
        notes = (notes or "").strip() or DEFAULT_APPROVAL_NOTE
        updated = await self._transition(
            sale, APPROVE, actor, "Aprobado por auditor",
            fields={
                "audit_status": AuditStatus.APROBADO,
                "auditor_id": actor.user_id,
                "audited_at": now,
                "audit_notes": notes,
                "contract_start_date": first_day_of_month(now),
            },
            metadata={"audit_notes": notes},
        )
        await self.notifications.notify(
            sale.salesperson_id,
            "Venta aprobada",
            f"La venta {sale.contract_number or sale.id} fue aprobada por auditoría",
            category="success",
            action_url=f"/ventas/{sale.id}",
        )
        return updated

    async def reject(self, sale_id: str, actor: Actor, notes: str) -> Sale:
        """Reject the sale; the salesperson corrects it and resubmits."""
        if not notes or not notes.strip():
            raise SaleValidationError("Debe proporcionar un motivo de rechazo")
        sale = await self.get_sale(sale_id)
        self.authorize(sale, REJECT, actor)
        self._require_transition(sale, REJECT)

        notes = notes.strip()
        updated = await self._transition(
            sale, REJECT, actor, f"Rechazado: {notes}",
            fields={
                "audit_status": AuditStatus.RECHAZADO,
                "auditor_id": actor.user_id,
                "audited_at": self.clock(),
                "audit_notes": notes,
            },
            metadata={"audit_notes": notes},
        )
        await self.notifications.notify(
            sale.salesperson_id,
            "Venta rechazada",
            f"La venta {sale.contract_number or sale.id} fue rechazada: {notes}",
            category="error",
            action_url=f"/ventas/{sale.id}",
        )
        return updated

    async def request_info(self, sale_id: str, actor: Actor, notes: str) -> Sale:
        """Ask the salesperson for more data before deciding."""
        if not notes or not notes.strip():
            raise SaleValidationError("Debe especificar qué información adicional necesita")
        sale = await self.get_sale(sale_id)
        self.authorize(sale, REQUEST_INFO, actor)
        self._require_transition(sale, REQUEST_INFO)

        notes = notes.strip()
        request = InformationRequest(
            sale_id=sale.id,
            description=notes,
            requested_by=actor.user_id,
        )
        updated = await self._transition(
            sale, REQUEST_INFO, actor, f"Información solicitada: {notes}",
            fields={
                "audit_status": AuditStatus.REQUIERE_INFO,
                "auditor_id": actor.user_id,
                "audit_notes": notes,
            },
            metadata={"audit_notes": notes, "information_request_id": request.id},
        )
        # only opened once the status change is stored
        await self.db.insert_information_request(request)
        await self.notifications.notify(
            sale.salesperson_id,
            "Información requerida",
            f"Auditoría solicita información sobre la venta {sale.contract_number or sale.id}: {notes}",
            category="warning",
            action_url=f"/ventas/{sale.id}",
        )
        return updated

    async def complete(self, sale_id: str, actor: Actor) -> Sale:
        sale = await self.get_sale(sale_id)
        self.authorize(sale, COMPLETE, actor)
        return await self._transition(sale, COMPLETE, actor, "Venta completada")

    async def cancel(self, sale_id: str, actor: Actor, reason: Optional[str] = None) -> Sale:
        sale = await self.get_sale(sale_id)
        self.authorize(sale, CANCEL, actor)
        reason = (reason or "").strip()
        return await self._transition(
            sale, CANCEL, actor, f"Cancelada: {reason}" if reason else "Venta cancelada"
        )

    # ---- Subsystem actions ----

    async def mark_sent(self, sale_id: str, actor: Actor, details: Optional[dict] = None) -> Sale:
        """Documents and links exist; only the generation subsystem calls this."""
        sale = await self.get_sale(sale_id)
        self.authorize(sale, SEND, actor)
        return await self._transition(
            sale, SEND, actor, "Documentos enviados para firma", metadata=details
        )

    async def mark_signed(self, sale_id: str, actor: Actor) -> Sale:
        sale = await self.get_sale(sale_id)
        self.authorize(sale, SIGN, actor)
        return await self._transition(sale, SIGN, actor, "Todas las firmas completadas")

    # ---- Queries ----

    async def history(self, sale_id: str) -> List[WorkflowTransition]:
        await self.get_sale(sale_id)
        transitions = await self.db.list_transitions(sale_id)
        return sorted(
            transitions,
            key=lambda t: t.created_at or datetime.min.replace(tzinfo=timezone.utc),
        )
