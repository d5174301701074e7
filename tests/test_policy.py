"""Tests for company transition policies"""

from insurance_sales.models import SaleStatus, TransitionRule, UserRole, WorkflowConfig
from insurance_sales.services.policy import CONDITION_MESSAGES, default_workflow_config


def send_rule(**kwargs) -> TransitionRule:
    return TransitionRule(
        from_status=SaleStatus.APROBADO_PARA_TEMPLATES,
        to_status=SaleStatus.ENVIADO,
        **kwargs,
    )


class TestTransitionPolicy:

    async def test_no_config_allows(self, services, approved_sale):
        decision = await services.policy.check(approved_sale.sale, SaleStatus.ENVIADO, UserRole.AUDITOR)
        assert decision.allowed
        assert decision.reasons == []

    async def test_inactive_config_allows(self, services, approved_sale, db):
        db.set_workflow_config(WorkflowConfig(
            company_id=approved_sale.company.id, is_active=False, transitions=[],
        ))
        decision = await services.policy.check(approved_sale.sale, SaleStatus.ENVIADO, UserRole.AUDITOR)
        assert decision.allowed

    async def test_missing_rule_denies(self, services, approved_sale, db):
        db.set_workflow_config(WorkflowConfig(company_id=approved_sale.company.id, transitions=[]))
        decision = await services.policy.check(approved_sale.sale, SaleStatus.ENVIADO, UserRole.AUDITOR)
        assert not decision.allowed
        assert decision.reasons == ["Transicion no permitida en la configuracion"]

    async def test_every_failing_condition_is_reported(self, services, approved_sale, db):
        db.set_workflow_config(WorkflowConfig(
            company_id=approved_sale.company.id,
            transitions=[send_rule(
                allowed_roles=[UserRole.ADMIN],
                conditions=["has_documents", "has_signature_token", "has_client"],
                require_note=True,
            )],
        ))
        decision = await services.policy.check(approved_sale.sale, SaleStatus.ENVIADO, UserRole.AUDITOR)
        assert not decision.allowed
        assert decision.reasons == [
            'El rol "auditor" no puede realizar esta transicion',
            CONDITION_MESSAGES["has_documents"],
            CONDITION_MESSAGES["has_signature_token"],
            "Esta transicion requiere una nota",
        ]

    async def test_unknown_condition_is_ignored(self, services, approved_sale, db):
        db.set_workflow_config(WorkflowConfig(
            company_id=approved_sale.company.id,
            transitions=[send_rule(conditions=["tiene_mascota"])],
        ))
        decision = await services.policy.check(approved_sale.sale, SaleStatus.ENVIADO, UserRole.AUDITOR)
        assert decision.allowed

    async def test_note_satisfies_requirement(self, services, pending_sale, db):
        db.set_workflow_config(default_workflow_config(pending_sale.company.id))
        decision = await services.policy.check(
            pending_sale.sale, SaleStatus.RECHAZADO, UserRole.AUDITOR, note="Falta CI",
        )
        assert decision.allowed
        decision = await services.policy.check(pending_sale.sale, SaleStatus.RECHAZADO, UserRole.AUDITOR)
        assert decision.reasons == ["Esta transicion requiere una nota"]
