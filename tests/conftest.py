"""Pytest configuration and fixtures"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

import pytest

from insurance_sales.db.memory import MemoryDatabase, MemoryFileStore, MemoryNotificationSink
from insurance_sales.models import (
    Actor,
    AuditStatus,
    Beneficiary,
    Client,
    Company,
    HealthAnswer,
    HealthDeclaration,
    HealthHabits,
    Plan,
    Sale,
    SaleStatus,
    Template,
    TemplateAttachment,
    UserRole,
)
from insurance_sales.services import health_declaration
from insurance_sales.services.container import LifecycleServices
from insurance_sales.utils.config import Settings

FIXED_NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)

CONTRACT_BODY = (
    "<h1>Contrato N° {{venta.numero_contrato}}</h1>"
    "<p>Titular: {{cliente.nombre_completo}} (CI {{cliente.dni}})</p>"
    "<p>Plan {{plan.nombre}} por {{venta.total_formateado}}</p>"
    "<p>Firma: {{fecha.actual}}</p>"
)

DDJJ_BODY = (
    "<p>Declarante: {{cliente.nombre_completo}}</p>"
    "<p>Fuma: {{respuestas.ddjj_fuma}}</p>"
    "<p>Peso: {{ddjj_peso}}</p>"
)


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Force the in-memory backend and predictable settings"""
    monkeypatch.setenv("DB_MODE", "memory")
    monkeypatch.setenv("SIGNATURE_BASE_URL", "https://firmas.test/firmar")
    monkeypatch.setenv("SIGNATURE_LINK_EXPIRATION_DAYS", "1")
    yield


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def files() -> MemoryFileStore:
    return MemoryFileStore()


@pytest.fixture
def sink() -> MemoryNotificationSink:
    return MemoryNotificationSink()


@pytest.fixture
def services(db, files, sink) -> LifecycleServices:
    return LifecycleServices(db, files, sink, settings=Settings(), clock=lambda: FIXED_NOW)


@pytest.fixture
def vendedor() -> Actor:
    return Actor(user_id="vend-1", role=UserRole.VENDEDOR)


@pytest.fixture
def auditor() -> Actor:
    return Actor(user_id="aud-1", role=UserRole.AUDITOR)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=UserRole.ADMIN)


@dataclass
class SeededSale:
    sale: Sale
    client: Client
    plan: Plan
    company: Company
    titular: Beneficiary
    adherent: Beneficiary
    contract: Template
    ddjj: Template
    annex: Template
    attachment: TemplateAttachment

    @property
    def id(self) -> str:
        return self.sale.id


def seed_sale(
    db: MemoryDatabase,
    files: Optional[MemoryFileStore] = None,
    status: SaleStatus = SaleStatus.APROBADO_PARA_TEMPLATES,
    audit_status: Optional[AuditStatus] = AuditStatus.APROBADO,
    templates: Optional[List[str]] = None,
    **sale_fields,
) -> SeededSale:
    """Sale for Juan Pérez with one adherent (Ana Gómez) and three templates"""
    client = db.add_client(Client(
        first_name="Juan", last_name="Pérez", dni="1234567",
        email="juan@example.com", phone="0981111222", city="Asunción",
        birth_date=date(1980, 6, 20),
    ))
    plan = db.add_plan(Plan(name="Plan Familiar", price=350000))
    company = db.add_company(Company(name="Seguros del Sur"))
    fields = {
        "status": status,
        "audit_status": audit_status,
        "client_id": client.id,
        "plan_id": plan.id,
        "company_id": company.id,
        "salesperson_id": "vend-1",
        "salesperson_name": "Carla Vendedora",
        "contract_number": "C-0042",
        "total_amount": 1500000,
        "sale_date": date(2024, 3, 5),
    }
    fields.update(sale_fields)
    sale = db.add_sale(Sale(**fields))

    titular = db.add_beneficiary(Beneficiary(
        sale_id=sale.id, first_name="Juan", last_name="Pérez", document_number="1234567",
        is_primary=True, relationship="Titular", email="juan@example.com",
        preexisting_conditions_detail=health_declaration.encode(HealthDeclaration(
            answers=[HealthAnswer(affirmative=True, detail="Diabetes tipo 2")],
            habits=HealthHabits(smokes=True),
            weight="80",
        )),
        has_preexisting_conditions=True,
    ))
    adherent = db.add_beneficiary(Beneficiary(
        sale_id=sale.id, first_name="Ana", last_name="Gómez", document_number="7654321",
        relationship="Hija", email="ana@example.com", birth_date=date(2010, 1, 10),
        preexisting_conditions_detail="Peso: 55",
    ))

    contract = db.add_template(Template(name="Contrato de Servicios", content=CONTRACT_BODY))
    ddjj = db.add_template(Template(name="Declaración Jurada de Salud", content=DDJJ_BODY))
    annex = db.add_template(Template(name="Condiciones Generales"))
    attachment = db.add_attachment(TemplateAttachment(
        template_id=annex.id,
        file_name="condiciones.pdf",
        file_path=f"templates/{annex.id}/condiciones.pdf",
    ))
    if files is not None:
        files.files[attachment.file_path] = b"%PDF-1.4 condiciones"

    selected = {"contract": contract, "ddjj": ddjj, "annex": annex}
    for key in templates if templates is not None else ["contract", "ddjj", "annex"]:
        db.link_template(sale.id, selected[key].id)

    return SeededSale(
        sale=sale, client=client, plan=plan, company=company,
        titular=titular, adherent=adherent,
        contract=contract, ddjj=ddjj, annex=annex, attachment=attachment,
    )


@pytest.fixture
def approved_sale(db, files) -> SeededSale:
    return seed_sale(db, files)


@pytest.fixture
def draft_sale(db, files) -> SeededSale:
    return seed_sale(db, files, status=SaleStatus.BORRADOR, audit_status=None)


@pytest.fixture
def pending_sale(db, files) -> SeededSale:
    return seed_sale(db, files, status=SaleStatus.PENDIENTE, audit_status=None)


@pytest.fixture
def make_sale(db, files):
    """Factory for sales in any state"""
    def _make(**kwargs) -> SeededSale:
        return seed_sale(db, files, **kwargs)
    return _make
