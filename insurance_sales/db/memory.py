"""In-process backend implementing the data access interfaces.

Used for local runs (DB_MODE=memory) and by the test suite. Rows are stored as
pydantic models and copied on the way in and out so callers never share state
with the store.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, TypeVar

from pydantic import BaseModel

from insurance_sales.db.base import DatabaseInterface, FileStoreInterface, NotificationSink
from insurance_sales.models import (
    Beneficiary,
    Client,
    Company,
    GeneratedDocument,
    GenerationLease,
    InformationRequest,
    Notification,
    Plan,
    ProcessTrace,
    Sale,
    SaleTemplate,
    SignatureLink,
    Template,
    TemplateAttachment,
    WorkflowConfig,
    WorkflowTransition,
)
from insurance_sales.services.errors import SaleNotFoundError, StorageError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryDatabase(DatabaseInterface):
    """Dictionary-backed implementation of DatabaseInterface.

    `fail_on` holds operation names (method names) that raise StorageError,
    which lets callers exercise partial-failure paths.
    """

    def __init__(self):
        self.sales: Dict[str, Sale] = {}
        self.clients: Dict[str, Client] = {}
        self.plans: Dict[str, Plan] = {}
        self.companies: Dict[str, Company] = {}
        self.beneficiaries: Dict[str, Beneficiary] = {}
        self.templates: Dict[str, Template] = {}
        self.sale_templates: Dict[str, SaleTemplate] = {}
        self.attachments: Dict[str, TemplateAttachment] = {}
        self.documents: Dict[str, GeneratedDocument] = {}
        self.transitions: List[WorkflowTransition] = []
        self.workflow_configs: Dict[str, WorkflowConfig] = {}
        self.information_requests: Dict[str, InformationRequest] = {}
        self.signature_links: Dict[str, SignatureLink] = {}
        self.traces: List[ProcessTrace] = []
        self.responses: Dict[str, Dict[str, str]] = {}
        self.leases: Dict[str, GenerationLease] = {}
        self.fail_on: Set[str] = set()
        self.call_counts: Dict[str, int] = defaultdict(int)

    # ---- Seeding helpers (not part of the interface) ----

    def add_client(self, client: Client) -> Client:
        self.clients[client.id] = client.model_copy(deep=True)
        return client

    def add_plan(self, plan: Plan) -> Plan:
        self.plans[plan.id] = plan.model_copy(deep=True)
        return plan

    def add_company(self, company: Company) -> Company:
        self.companies[company.id] = company.model_copy(deep=True)
        return company

    def add_sale(self, sale: Sale) -> Sale:
        self.sales[sale.id] = self._stamp(sale)
        return sale

    def add_beneficiary(self, beneficiary: Beneficiary) -> Beneficiary:
        self.beneficiaries[beneficiary.id] = self._stamp(beneficiary)
        return beneficiary

    def link_template(self, sale_id: str, template_id: str) -> None:
        link = SaleTemplate(sale_id=sale_id, template_id=template_id)
        self.sale_templates[link.id] = link

    def add_template(self, template: Template) -> Template:
        self.templates[template.id] = template.model_copy(deep=True)
        return template

    def add_attachment(self, attachment: TemplateAttachment) -> TemplateAttachment:
        self.attachments[attachment.id] = attachment.model_copy(deep=True)
        return attachment

    def set_responses(self, sale_id: str, responses: Dict[str, str]) -> None:
        self.responses[sale_id] = dict(responses)

    def set_workflow_config(self, config: WorkflowConfig) -> WorkflowConfig:
        self.workflow_configs[config.company_id] = config.model_copy(deep=True)
        return config

    # ---- Internal helpers ----

    def _check(self, operation: str) -> None:
        self.call_counts[operation] += 1
        if operation in self.fail_on:
            raise StorageError(operation, RuntimeError("injected failure"))

    @staticmethod
    def _copy(model: Optional[M]) -> Optional[M]:
        return model.model_copy(deep=True) if model is not None else None

    @staticmethod
    def _stamp(model: M) -> M:
        model = model.model_copy(deep=True)
        if "created_at" in type(model).model_fields and getattr(model, "created_at") is None:
            model.created_at = _utc_now()
        return model

    @staticmethod
    def _patch(model: M, fields: dict) -> M:
        return type(model).model_validate({**model.model_dump(), **fields})

    # ---- Sales and parties ----

    async def get_sale(self, sale_id: str) -> Optional[Sale]:
        self._check("get_sale")
        return self._copy(self.sales.get(sale_id))

    async def insert_sale(self, sale: Sale) -> Sale:
        self._check("insert_sale")
        stored = self._stamp(sale)
        stored.updated_at = stored.created_at
        self.sales[stored.id] = stored
        return self._copy(stored)

    async def update_sale(self, sale_id: str, fields: dict) -> Sale:
        self._check("update_sale")
        if sale_id not in self.sales:
            raise SaleNotFoundError(f"Sale not found: {sale_id}")
        updated = self._patch(self.sales[sale_id], {**fields, "updated_at": _utc_now()})
        self.sales[sale_id] = updated
        return self._copy(updated)

    async def get_client(self, client_id: str) -> Optional[Client]:
        self._check("get_client")
        return self._copy(self.clients.get(client_id))

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        self._check("get_plan")
        return self._copy(self.plans.get(plan_id))

    async def get_company(self, company_id: str) -> Optional[Company]:
        self._check("get_company")
        return self._copy(self.companies.get(company_id))

    # ---- Beneficiaries ----

    async def list_beneficiaries(self, sale_id: str) -> List[Beneficiary]:
        self._check("list_beneficiaries")
        return [self._copy(b) for b in self.beneficiaries.values() if b.sale_id == sale_id]

    async def get_beneficiary(self, beneficiary_id: str) -> Optional[Beneficiary]:
        self._check("get_beneficiary")
        return self._copy(self.beneficiaries.get(beneficiary_id))

    async def insert_beneficiary(self, beneficiary: Beneficiary) -> Beneficiary:
        self._check("insert_beneficiary")
        stored = self._stamp(beneficiary)
        self.beneficiaries[stored.id] = stored
        return self._copy(stored)

    async def update_beneficiary(self, beneficiary_id: str, fields: dict) -> Beneficiary:
        self._check("update_beneficiary")
        if beneficiary_id not in self.beneficiaries:
            raise SaleNotFoundError(f"Beneficiary not found: {beneficiary_id}")
        updated = self._patch(self.beneficiaries[beneficiary_id], fields)
        self.beneficiaries[beneficiary_id] = updated
        return self._copy(updated)

    async def delete_beneficiary(self, beneficiary_id: str) -> None:
        self._check("delete_beneficiary")
        self.beneficiaries.pop(beneficiary_id, None)

    # ---- Templates ----

    async def list_sale_templates(self, sale_id: str) -> List[Template]:
        self._check("list_sale_templates")
        return [
            self._copy(self.templates[st.template_id])
            for st in self.sale_templates.values()
            if st.sale_id == sale_id and st.template_id in self.templates
        ]

    async def add_sale_template(self, sale_id: str, template_id: str) -> SaleTemplate:
        self._check("add_sale_template")
        link = self._stamp(SaleTemplate(sale_id=sale_id, template_id=template_id))
        self.sale_templates[link.id] = link
        return self._copy(link)

    async def list_template_attachments(self, template_ids: List[str]) -> List[TemplateAttachment]:
        self._check("list_template_attachments")
        wanted = set(template_ids)
        return [self._copy(a) for a in self.attachments.values() if a.template_id in wanted]

    async def insert_template_attachment(self, attachment: TemplateAttachment) -> TemplateAttachment:
        self._check("insert_template_attachment")
        stored = self._stamp(attachment)
        self.attachments[stored.id] = stored
        return self._copy(stored)

    async def get_questionnaire_responses(self, sale_id: str) -> Dict[str, str]:
        self._check("get_questionnaire_responses")
        return dict(self.responses.get(sale_id, {}))

    # ---- Generated documents ----

    async def list_documents(self, sale_id: str) -> List[GeneratedDocument]:
        self._check("list_documents")
        return [self._copy(d) for d in self.documents.values() if d.sale_id == sale_id]

    async def get_document(self, document_id: str) -> Optional[GeneratedDocument]:
        self._check("get_document")
        return self._copy(self.documents.get(document_id))

    async def insert_document(self, document: GeneratedDocument) -> GeneratedDocument:
        self._check("insert_document")
        stored = self._stamp(document)
        self.documents[stored.id] = stored
        return self._copy(stored)

    async def update_documents(self, document_ids: List[str], fields: dict) -> int:
        self._check("update_documents")
        count = 0
        for doc_id in document_ids:
            if doc_id in self.documents:
                self.documents[doc_id] = self._patch(self.documents[doc_id], fields)
                count += 1
        return count

    async def delete_documents(self, document_ids: List[str]) -> int:
        self._check("delete_documents")
        count = 0
        for doc_id in document_ids:
            if self.documents.pop(doc_id, None) is not None:
                count += 1
        return count

    # ---- Workflow ----

    async def insert_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        self._check("insert_transition")
        stored = self._stamp(transition)
        self.transitions.append(stored)
        return self._copy(stored)

    async def list_transitions(self, sale_id: str) -> List[WorkflowTransition]:
        self._check("list_transitions")
        return [self._copy(t) for t in self.transitions if t.sale_id == sale_id]

    async def get_workflow_config(self, company_id: str) -> Optional[WorkflowConfig]:
        self._check("get_workflow_config")
        return self._copy(self.workflow_configs.get(company_id))

    async def insert_information_request(self, request: InformationRequest) -> InformationRequest:
        self._check("insert_information_request")
        stored = self._stamp(request)
        self.information_requests[stored.id] = stored
        return self._copy(stored)

    async def get_information_request(self, request_id: str) -> Optional[InformationRequest]:
        self._check("get_information_request")
        return self._copy(self.information_requests.get(request_id))

    async def update_information_request(self, request_id: str, fields: dict) -> InformationRequest:
        self._check("update_information_request")
        if request_id not in self.information_requests:
            raise SaleNotFoundError(f"Information request not found: {request_id}")
        updated = self._patch(self.information_requests[request_id], fields)
        self.information_requests[request_id] = updated
        return self._copy(updated)

    async def list_information_requests(
        self, sale_id: str, status: Optional[str] = None
    ) -> List[InformationRequest]:
        self._check("list_information_requests")
        return [
            self._copy(r)
            for r in self.information_requests.values()
            if r.sale_id == sale_id and (status is None or r.status == status)
        ]

    # ---- Signature links ----

    async def insert_signature_link(self, link: SignatureLink) -> SignatureLink:
        self._check("insert_signature_link")
        stored = self._stamp(link)
        self.signature_links[stored.id] = stored
        return self._copy(stored)

    async def list_signature_links(self, sale_id: str) -> List[SignatureLink]:
        self._check("list_signature_links")
        return [self._copy(l) for l in self.signature_links.values() if l.sale_id == sale_id]

    async def get_signature_link(self, link_id: str) -> Optional[SignatureLink]:
        self._check("get_signature_link")
        return self._copy(self.signature_links.get(link_id))

    async def get_signature_link_by_token(self, token: str) -> Optional[SignatureLink]:
        self._check("get_signature_link_by_token")
        for link in self.signature_links.values():
            if link.token == token:
                return self._copy(link)
        return None

    async def update_signature_link(self, link_id: str, fields: dict) -> SignatureLink:
        self._check("update_signature_link")
        if link_id not in self.signature_links:
            raise SaleNotFoundError(f"Signature link not found: {link_id}")
        updated = self._patch(self.signature_links[link_id], fields)
        self.signature_links[link_id] = updated
        return self._copy(updated)

    # ---- Diagnostics and coordination ----

    async def insert_process_trace(self, trace: ProcessTrace) -> ProcessTrace:
        self._check("insert_process_trace")
        stored = self._stamp(trace)
        self.traces.append(stored)
        return self._copy(stored)

    async def list_process_traces(self, sale_id: str) -> List[ProcessTrace]:
        self._check("list_process_traces")
        return [self._copy(t) for t in self.traces if t.sale_id == sale_id]

    async def acquire_generation_lease(self, sale_id: str, holder: str, ttl_seconds: int) -> bool:
        self._check("acquire_generation_lease")
        now = _utc_now()
        current = self.leases.get(sale_id)
        if current is not None and current.expires_at > now and current.holder != holder:
            return False
        self.leases[sale_id] = GenerationLease(
            sale_id=sale_id,
            holder=holder,
            expires_at=now + timedelta(seconds=ttl_seconds),
            created_at=now,
        )
        return True

    async def release_generation_lease(self, sale_id: str, holder: str) -> None:
        self._check("release_generation_lease")
        current = self.leases.get(sale_id)
        if current is not None and current.holder == holder:
            del self.leases[sale_id]

    async def get_status(self) -> dict:
        return {
            "backend": "memory",
            "connected": True,
            "tables": {
                "sales": len(self.sales),
                "beneficiaries": len(self.beneficiaries),
                "templates": len(self.templates),
                "documents": len(self.documents),
                "signature_links": len(self.signature_links),
                "sale_workflow_states": len(self.transitions),
            },
        }


class MemoryFileStore(FileStoreInterface):
    """Keeps uploaded bytes in a dict and issues fake signed URLs."""

    def __init__(self, base_url: str = "memory://storage"):
        self.base_url = base_url
        self.files: Dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        self.files[path] = data
        return path

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        if path not in self.files:
            raise StorageError("create_signed_url", FileNotFoundError(path))
        return f"{self.base_url}/{path}?expires_in={expires_in}"


class MemoryNotificationSink(NotificationSink):
    """Collects notifications in a list."""

    def __init__(self):
        self.sent: List[Notification] = []
        self.fail = False

    async def send(self, notification: Notification) -> None:
        if self.fail:
            raise StorageError("send_notification", RuntimeError("sink unavailable"))
        stored = notification.model_copy(deep=True)
        if stored.created_at is None:
            stored.created_at = _utc_now()
        self.sent.append(stored)
        logger.debug(f"Notification queued for {stored.user_id}: {stored.title}")
