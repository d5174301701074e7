"""Tests for the sale workflow state machine"""

from datetime import date

import pytest

from insurance_sales.models import (
    Actor,
    AuditStatus,
    InformationRequestStatus,
    SaleStatus,
    UserRole,
)
from insurance_sales.services.errors import (
    AuthorizationError,
    SaleNotFoundError,
    SaleValidationError,
    StorageError,
    TransitionNotAllowedError,
)
from insurance_sales.services.workflow import TRANSITION_MAP, allowed_from


# ──────────────────────────────────────────────────────────────────
# Transition table
# ──────────────────────────────────────────────────────────────────

class TestTransitionMap:

    def test_terminal_states_have_no_exits(self):
        for status, _ in TRANSITION_MAP:
            assert status not in (SaleStatus.COMPLETADO, SaleStatus.CANCELADO)

    def test_reject_and_request_info_share_target(self):
        assert TRANSITION_MAP[(SaleStatus.PENDIENTE, "reject")] == SaleStatus.RECHAZADO
        assert TRANSITION_MAP[(SaleStatus.PENDIENTE, "request_info")] == SaleStatus.RECHAZADO

    def test_allowed_from(self):
        assert allowed_from("submit") == {"borrador", "rechazado"}
        assert allowed_from("sign") == {"enviado"}


# ──────────────────────────────────────────────────────────────────
# Salesperson actions
# ──────────────────────────────────────────────────────────────────

class TestSubmit:

    async def test_draft_goes_to_pending(self, services, draft_sale, vendedor):
        sale = await services.workflow.submit(draft_sale.id, vendedor)
        assert sale.status == SaleStatus.PENDIENTE

        history = await services.workflow.history(draft_sale.id)
        assert len(history) == 1
        assert history[0].previous_status == SaleStatus.BORRADOR
        assert history[0].new_status == SaleStatus.PENDIENTE
        assert history[0].changed_by == "vend-1"
        assert history[0].metadata["action"] == "submit"

    async def test_missing_plan_is_rejected_without_changes(self, services, make_sale, db, vendedor):
        seeded = make_sale(status=SaleStatus.BORRADOR, audit_status=None, plan_id=None)
        with pytest.raises(SaleValidationError, match="plan"):
            await services.workflow.submit(seeded.id, vendedor)
        assert db.sales[seeded.id].status == SaleStatus.BORRADOR
        assert db.transitions == []

    async def test_other_salesperson_cannot_submit(self, services, draft_sale):
        other = Actor(user_id="vend-2", role=UserRole.VENDEDOR)
        with pytest.raises(AuthorizationError):
            await services.workflow.submit(draft_sale.id, other)

    async def test_unknown_sale(self, services, vendedor):
        with pytest.raises(SaleNotFoundError):
            await services.workflow.submit("no-such-sale", vendedor)


# ──────────────────────────────────────────────────────────────────
# Auditor actions
# ──────────────────────────────────────────────────────────────────

class TestApprove:

    async def test_approve_sets_audit_fields(self, services, pending_sale, auditor, sink):
        sale = await services.workflow.approve(pending_sale.id, auditor)

        assert sale.status == SaleStatus.APROBADO_PARA_TEMPLATES
        assert sale.audit_status == AuditStatus.APROBADO
        assert sale.audit_notes == "Aprobado sin observaciones"
        assert sale.auditor_id == "aud-1"
        assert sale.contract_start_date == date(2024, 3, 1)

        history = await services.workflow.history(pending_sale.id)
        assert history[-1].metadata["action"] == "approve"
        assert history[-1].metadata["role"] == "auditor"

        assert len(sink.sent) == 1
        assert sink.sent[0].user_id == "vend-1"
        assert sink.sent[0].type == "success"

    async def test_approve_with_notes(self, services, pending_sale, auditor):
        sale = await services.workflow.approve(pending_sale.id, auditor, notes="  Documentación completa ")
        assert sale.audit_notes == "Documentación completa"

    async def test_approve_from_review(self, services, pending_sale, auditor):
        sale = await services.workflow.start_review(pending_sale.id, auditor)
        assert sale.status == SaleStatus.EN_AUDITORIA
        sale = await services.workflow.approve(pending_sale.id, auditor)
        assert sale.status == SaleStatus.APROBADO_PARA_TEMPLATES

    async def test_salesperson_cannot_approve(self, services, pending_sale, vendedor, db):
        with pytest.raises(AuthorizationError, match="permitido desde"):
            await services.workflow.approve(pending_sale.id, vendedor)
        assert db.sales[pending_sale.id].status == SaleStatus.PENDIENTE

    async def test_draft_cannot_be_approved(self, services, draft_sale, auditor):
        with pytest.raises(TransitionNotAllowedError):
            await services.workflow.approve(draft_sale.id, auditor)

    async def test_notification_failure_does_not_block(self, services, pending_sale, auditor, sink):
        sink.fail = True
        sale = await services.workflow.approve(pending_sale.id, auditor)
        assert sale.status == SaleStatus.APROBADO_PARA_TEMPLATES


class TestReject:

    async def test_reject_requires_notes(self, services, pending_sale, auditor, db):
        before = db.sales[pending_sale.id].model_copy()
        with pytest.raises(SaleValidationError, match="motivo de rechazo"):
            await services.workflow.reject(pending_sale.id, auditor, notes="   ")
        assert db.sales[pending_sale.id] == before
        assert db.transitions == []

    async def test_reject(self, services, pending_sale, auditor):
        sale = await services.workflow.reject(pending_sale.id, auditor, notes="Falta CI del titular")
        assert sale.status == SaleStatus.RECHAZADO
        assert sale.audit_status == AuditStatus.RECHAZADO
        assert sale.audit_notes == "Falta CI del titular"

    async def test_rejected_sale_can_be_resubmitted(self, services, pending_sale, auditor, vendedor):
        await services.workflow.reject(pending_sale.id, auditor, notes="Falta CI")
        sale = await services.workflow.submit(pending_sale.id, vendedor, note="CI agregada")
        assert sale.status == SaleStatus.PENDIENTE
        assert sale.audit_status is None

        history = await services.workflow.history(pending_sale.id)
        assert history[-1].metadata["resubmission"] is True
        assert history[-1].change_reason == "Reenviado a auditoría: CI agregada"


class TestRequestInfo:

    async def test_request_info_requires_notes(self, services, pending_sale, auditor):
        with pytest.raises(SaleValidationError, match="información adicional"):
            await services.workflow.request_info(pending_sale.id, auditor, notes="")

    async def test_request_info_creates_request(self, services, pending_sale, auditor, db):
        sale = await services.workflow.request_info(pending_sale.id, auditor, notes="Adjuntar recibo")

        assert sale.status == SaleStatus.RECHAZADO
        assert sale.audit_status == AuditStatus.REQUIERE_INFO

        requests = await db.list_information_requests(pending_sale.id)
        assert len(requests) == 1
        assert requests[0].description == "Adjuntar recibo"
        assert requests[0].status == InformationRequestStatus.PENDIENTE

        history = await services.workflow.history(pending_sale.id)
        assert history[-1].metadata["action"] == "request_info"
        assert history[-1].metadata["information_request_id"] == requests[0].id

    async def test_failed_status_change_opens_no_request(self, services, pending_sale, auditor, db):
        db.fail_on.add("update_sale")
        with pytest.raises(StorageError):
            await services.workflow.request_info(pending_sale.id, auditor, notes="Adjuntar recibo")

        assert await db.list_information_requests(pending_sale.id) == []
        assert db.sales[pending_sale.id].status == SaleStatus.PENDIENTE

    async def test_resubmit_blocked_until_answered(self, services, pending_sale, auditor, vendedor, db, sink):
        await services.workflow.request_info(pending_sale.id, auditor, notes="Adjuntar recibo")
        with pytest.raises(SaleValidationError, match="sin responder"):
            await services.workflow.submit(pending_sale.id, vendedor)

        request = (await db.list_information_requests(pending_sale.id))[0]
        answered = await services.workflow.respond_information_request(request.id, vendedor, "Recibo adjunto")
        assert answered.status == InformationRequestStatus.RESPONDIDO
        assert sink.sent[-1].user_id == "aud-1"

        sale = await services.workflow.submit(pending_sale.id, vendedor)
        assert sale.status == SaleStatus.PENDIENTE

    async def test_answer_cannot_be_empty(self, services, pending_sale, auditor, vendedor, db):
        await services.workflow.request_info(pending_sale.id, auditor, notes="Adjuntar recibo")
        request = (await db.list_information_requests(pending_sale.id))[0]
        with pytest.raises(SaleValidationError):
            await services.workflow.respond_information_request(request.id, vendedor, "  ")


# ──────────────────────────────────────────────────────────────────
# Other transitions
# ──────────────────────────────────────────────────────────────────

class TestOtherTransitions:

    async def test_send_is_system_only(self, services, approved_sale, auditor):
        with pytest.raises(AuthorizationError):
            await services.workflow.mark_sent(approved_sale.id, auditor)
        sale = await services.workflow.mark_sent(approved_sale.id, Actor.system())
        assert sale.status == SaleStatus.ENVIADO

    async def test_salesperson_cancels_only_editable(self, services, draft_sale, pending_sale, vendedor):
        with pytest.raises(AuthorizationError):
            await services.workflow.cancel(pending_sale.id, vendedor)
        sale = await services.workflow.cancel(draft_sale.id, vendedor, reason="Cliente desistió")
        assert sale.status == SaleStatus.CANCELADO

    async def test_cancelled_sale_is_terminal(self, services, draft_sale, admin):
        await services.workflow.cancel(draft_sale.id, admin)
        with pytest.raises(TransitionNotAllowedError):
            await services.workflow.cancel(draft_sale.id, admin)

    async def test_complete_after_signature(self, make_sale, services, auditor):
        seeded = make_sale(status=SaleStatus.FIRMADO)
        sale = await services.workflow.complete(seeded.id, auditor)
        assert sale.status == SaleStatus.COMPLETADO

    async def test_history_is_chronological(self, services, draft_sale, vendedor, auditor):
        await services.workflow.submit(draft_sale.id, vendedor)
        await services.workflow.start_review(draft_sale.id, auditor)
        await services.workflow.approve(draft_sale.id, auditor)
        history = await services.workflow.history(draft_sale.id)
        assert [t.new_status for t in history] == [
            SaleStatus.PENDIENTE,
            SaleStatus.EN_AUDITORIA,
            SaleStatus.APROBADO_PARA_TEMPLATES,
        ]
