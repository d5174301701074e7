"""Tests for sale data mutations and the health declaration step"""

import pytest

from insurance_sales.models import (
    Actor,
    Beneficiary,
    HealthAnswer,
    HealthDeclaration,
    SaleStatus,
    Template,
    UserRole,
)
from insurance_sales.services.errors import AuthorizationError, SaleValidationError


class TestSaleEdits:

    async def test_create_sale_assigns_salesperson(self, services, vendedor):
        sale = await services.sales.create_sale(vendedor, contract_number="C-1")
        assert sale.status == SaleStatus.BORRADOR
        assert sale.salesperson_id == "vend-1"

    async def test_workflow_fields_are_not_editable(self, services, draft_sale, vendedor):
        with pytest.raises(SaleValidationError, match="status"):
            await services.sales.update_sale(draft_sale.id, vendedor, {"status": SaleStatus.ENVIADO})

    async def test_salesperson_edits_draft(self, services, draft_sale, vendedor):
        sale = await services.sales.update_sale(draft_sale.id, vendedor, {"notes": "Llamar a la tarde"})
        assert sale.notes == "Llamar a la tarde"

    async def test_salesperson_cannot_edit_under_audit(self, services, pending_sale, vendedor, db):
        with pytest.raises(AuthorizationError):
            await services.sales.update_sale(pending_sale.id, vendedor, {"notes": "cambio"})
        with pytest.raises(AuthorizationError):
            await services.sales.add_beneficiary(
                pending_sale.id, vendedor, Beneficiary(sale_id=pending_sale.id, first_name="Luis")
            )
        assert db.sales[pending_sale.id].notes == ""
        assert len(await db.list_beneficiaries(pending_sale.id)) == 2

    @pytest.mark.parametrize("status", [
        s for s in SaleStatus if s not in (SaleStatus.BORRADOR, SaleStatus.RECHAZADO)
    ])
    async def test_salesperson_mutations_denied_outside_editable(self, services, make_sale, vendedor, db, status):
        seeded = make_sale(status=status)
        with pytest.raises(AuthorizationError):
            await services.sales.update_sale(seeded.id, vendedor, {"notes": "cambio"})
        with pytest.raises(AuthorizationError):
            await services.sales.add_beneficiary(
                seeded.id, vendedor, Beneficiary(sale_id=seeded.id, first_name="Luis")
            )
        assert db.sales[seeded.id].notes == ""
        assert len(await db.list_beneficiaries(seeded.id)) == 2

    @pytest.mark.parametrize("status", [SaleStatus.BORRADOR, SaleStatus.RECHAZADO])
    async def test_salesperson_edits_editable_statuses(self, services, make_sale, vendedor, status):
        seeded = make_sale(status=status, audit_status=None)
        sale = await services.sales.update_sale(seeded.id, vendedor, {"notes": "cambio"})
        assert sale.notes == "cambio"

    async def test_auditor_cannot_edit_sale_data(self, services, pending_sale, auditor):
        with pytest.raises(AuthorizationError):
            await services.sales.update_sale(pending_sale.id, auditor, {"notes": "x"})

    async def test_admin_edits_until_closed(self, services, make_sale, admin):
        open_sale = make_sale(status=SaleStatus.ENVIADO)
        sale = await services.sales.update_sale(open_sale.id, admin, {"notes": "corregido"})
        assert sale.notes == "corregido"

        closed = make_sale(status=SaleStatus.COMPLETADO)
        with pytest.raises(AuthorizationError):
            await services.sales.update_sale(closed.id, admin, {"notes": "tarde"})

    async def test_remove_beneficiary(self, services, draft_sale, vendedor, db):
        await services.sales.remove_beneficiary(draft_sale.adherent.id, vendedor)
        remaining = await services.sales.list_beneficiaries(draft_sale.id)
        assert [b.first_name for b in remaining] == ["Juan"]

    async def test_update_beneficiary_keeps_sale(self, services, draft_sale, vendedor):
        updated = await services.sales.update_beneficiary(
            draft_sale.adherent.id, vendedor, {"relationship": "Cónyuge", "sale_id": "otra"}
        )
        assert updated.relationship == "Cónyuge"
        assert updated.sale_id == draft_sale.id

    async def test_auditor_assigns_template_during_review(self, services, pending_sale, auditor, db):
        extra = db.add_template(Template(name="Anexo de coberturas", content="<p>{{plan.nombre}}</p>"))
        await services.sales.assign_template(pending_sale.id, auditor, extra.id)
        assert extra.id in [t.id for t in await db.list_sale_templates(pending_sale.id)]

        with pytest.raises(SaleValidationError):
            await services.sales.assign_template(pending_sale.id, auditor, extra.id)

    async def test_financiero_cannot_assign_templates(self, services, draft_sale, db):
        extra = db.add_template(Template(name="Anexo"))
        financiero = Actor(user_id="fin-1", role=UserRole.FINANCIERO)
        with pytest.raises(AuthorizationError):
            await services.sales.assign_template(draft_sale.id, financiero, extra.id)


class TestHealthDeclarationStep:

    async def test_record_and_read_back(self, services, draft_sale):
        declaration = HealthDeclaration(
            answers=[None, HealthAnswer(affirmative=True, detail="Migrañas")],
            weight="55",
        )
        stored = await services.sales.record_health_declaration(draft_sale.adherent.id, declaration)
        assert stored.has_preexisting_conditions
        assert "Migrañas" in stored.preexisting_conditions_detail

        read = await services.sales.get_health_declaration(draft_sale.adherent.id)
        assert read.answers[1].detail == "Migrañas"
        assert read.weight == "55"

    async def test_closed_after_signature(self, services, make_sale):
        seeded = make_sale(status=SaleStatus.FIRMADO)
        with pytest.raises(SaleValidationError):
            await services.sales.record_health_declaration(seeded.adherent.id, HealthDeclaration())
