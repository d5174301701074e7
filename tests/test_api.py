"""Tests for the HTTP API"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from insurance_sales.api.app import create_app
from insurance_sales.api.state import init_services
from insurance_sales.models import GenerationLease, SaleStatus, TransitionRule, UserRole, WorkflowConfig

AUDITOR = {"X-User-Id": "aud-1", "X-User-Role": "auditor"}
VENDEDOR = {"X-User-Id": "vend-1", "X-User-Role": "vendedor"}


@pytest.fixture
def client(services) -> TestClient:
    init_services(services)
    return TestClient(create_app())


# ──────────────────────────────────────────────────────────────────
# Workflow endpoints
# ──────────────────────────────────────────────────────────────────

class TestWorkflowEndpoints:

    def test_approve(self, client, pending_sale):
        resp = client.post(f"/api/sales/{pending_sale.id}/approve", json={}, headers=AUDITOR)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "aprobado_para_templates"
        assert data["audit_status"] == "aprobado"
        assert data["contract_start_date"] == "2024-03-01"

    def test_reject_without_notes(self, client, pending_sale):
        resp = client.post(f"/api/sales/{pending_sale.id}/reject", json={}, headers=AUDITOR)
        assert resp.status_code == 400
        assert "motivo de rechazo" in resp.json()["detail"]

    def test_salesperson_cannot_approve(self, client, pending_sale):
        resp = client.post(f"/api/sales/{pending_sale.id}/approve", headers=VENDEDOR)
        assert resp.status_code == 403
        assert "permitido desde" in resp.json()["detail"]

    def test_illegal_transition(self, client, draft_sale):
        resp = client.post(f"/api/sales/{draft_sale.id}/approve", headers=AUDITOR)
        assert resp.status_code == 409

    def test_unknown_sale(self, client):
        resp = client.post("/api/sales/nope/approve", headers=AUDITOR)
        assert resp.status_code == 404

    def test_identity_headers_required(self, client, pending_sale):
        resp = client.post(f"/api/sales/{pending_sale.id}/approve")
        assert resp.status_code == 422

    @pytest.mark.parametrize("role", ["system", "cliente"])
    def test_rejected_roles(self, client, pending_sale, role):
        resp = client.post(
            f"/api/sales/{pending_sale.id}/approve",
            headers={"X-User-Id": "x", "X-User-Role": role},
        )
        assert resp.status_code == 403

    def test_request_info_and_respond(self, client, pending_sale, db):
        resp = client.post(
            f"/api/sales/{pending_sale.id}/request-info",
            json={"notes": "Adjuntar recibo"},
            headers=AUDITOR,
        )
        assert resp.status_code == 200
        assert resp.json()["audit_status"] == "requiere_info"

        request_id = next(iter(db.information_requests))
        resp = client.post(
            f"/api/information-requests/{request_id}/respond",
            json={"response": "Recibo adjunto"},
            headers=VENDEDOR,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "respondido"

        resp = client.post(f"/api/sales/{pending_sale.id}/submit", headers=VENDEDOR)
        assert resp.json()["status"] == "pendiente"

    def test_history(self, client, pending_sale):
        client.post(f"/api/sales/{pending_sale.id}/start-review", headers=AUDITOR)
        client.post(f"/api/sales/{pending_sale.id}/approve", headers=AUDITOR)
        resp = client.get(f"/api/sales/{pending_sale.id}/history", headers=AUDITOR)
        assert resp.status_code == 200
        assert [t["new_status"] for t in resp.json()["transitions"]] == [
            "en_auditoria",
            "aprobado_para_templates",
        ]


# ──────────────────────────────────────────────────────────────────
# Document endpoints
# ──────────────────────────────────────────────────────────────────

class TestDocumentEndpoints:

    def test_generate(self, client, approved_sale):
        resp = client.post(f"/api/sales/{approved_sale.id}/documents/generate", headers=AUDITOR)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "enviado"
        assert len(data["documents"]) == 4
        assert len(data["signature_links"]) == 2
        for link in data["signature_links"]:
            assert link["url"].startswith("https://firmas.test/firmar/")

        resp = client.get(f"/api/sales/{approved_sale.id}/documents", headers=AUDITOR)
        assert len(resp.json()["documents"]) == 4

    def test_generation_in_progress(self, client, approved_sale, db):
        db.leases[approved_sale.id] = GenerationLease(
            sale_id=approved_sale.id,
            holder="other",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=5),
        )
        resp = client.post(f"/api/sales/{approved_sale.id}/documents/generate", headers=AUDITOR)
        assert resp.status_code == 409

    def test_storage_failure_reports_partial_result(self, client, approved_sale, db):
        db.fail_on.add("insert_signature_link")
        resp = client.post(f"/api/sales/{approved_sale.id}/documents/generate", headers=AUDITOR)
        assert resp.status_code == 502
        assert resp.json()["documents_created"] == 4

    def test_policy_denial(self, client, approved_sale, db):
        db.set_workflow_config(WorkflowConfig(
            company_id=approved_sale.company.id,
            transitions=[TransitionRule(
                from_status=SaleStatus.APROBADO_PARA_TEMPLATES,
                to_status=SaleStatus.ENVIADO,
                allowed_roles=[UserRole.ADMIN],
            )],
        ))
        resp = client.post(f"/api/sales/{approved_sale.id}/documents/generate", headers=AUDITOR)
        assert resp.status_code == 403
        data = resp.json()
        assert data["reasons"] == ['El rol "auditor" no puede realizar esta transicion']
        assert data["documents_created"] == 4

    def test_download(self, client, approved_sale):
        data = client.post(f"/api/sales/{approved_sale.id}/documents/generate", headers=AUDITOR).json()
        docs = {d["name"]: d for d in data["documents"]}

        resp = client.get(f"/api/documents/{docs['condiciones.pdf']['id']}/download", headers=AUDITOR)
        assert resp.status_code == 200
        assert resp.json()["url"].startswith(f"memory://storage/{approved_sale.attachment.file_path}")

        resp = client.get(f"/api/documents/{docs['Contrato de Servicios']['id']}/download", headers=AUDITOR)
        assert resp.status_code == 400


# ──────────────────────────────────────────────────────────────────
# Signature endpoints
# ──────────────────────────────────────────────────────────────────

class TestSignatureEndpoints:

    def _links(self, client, sale_id):
        data = client.post(f"/api/sales/{sale_id}/documents/generate", headers=AUDITOR).json()
        return {l["recipient_type"]: l for l in data["signature_links"]}

    def test_sign_everything(self, client, approved_sale):
        links = self._links(client, approved_sale.id)
        tokens = {kind: link["url"].rsplit("/", 1)[1] for kind, link in links.items()}

        resp = client.get(f"/api/signatures/{tokens['titular']}")
        assert resp.status_code == 200
        assert resp.json()["link"]["status"] == "visualizado"
        assert len(resp.json()["documents"]) == 3

        resp = client.post(f"/api/signatures/{tokens['titular']}/complete", json={"signed_ip": "10.0.0.1"})
        assert resp.json()["sale_status"] == "enviado"

        resp = client.post(f"/api/signatures/{tokens['adherente']}/complete")
        assert resp.status_code == 200
        assert resp.json()["sale_status"] == "firmado"

        resp = client.post(f"/api/signatures/{tokens['titular']}/complete")
        assert resp.status_code == 400

    def test_resend(self, client, approved_sale):
        links = self._links(client, approved_sale.id)
        old = links["adherente"]
        resp = client.post(f"/api/signature-links/{old['id']}/resend", headers=AUDITOR)
        assert resp.status_code == 200
        assert resp.json()["id"] != old["id"]
        assert resp.json()["status"] == "pendiente"

        old_token = old["url"].rsplit("/", 1)[1]
        assert client.get(f"/api/signatures/{old_token}").status_code == 400
