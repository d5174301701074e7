"""Abstract data access interfaces: strategy pattern for Supabase/in-memory switching"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from insurance_sales.models import (
    Beneficiary,
    Client,
    Company,
    GeneratedDocument,
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


class DatabaseInterface(ABC):
    """Row-level access to the relational store.
    Implemented by both Supabase and in-memory backends.
    Every method raises StorageError when the backend call fails."""

    # ---- Sales and parties ----

    @abstractmethod
    async def get_sale(self, sale_id: str) -> Optional[Sale]:
        """Get a sale by ID."""

    @abstractmethod
    async def insert_sale(self, sale: Sale) -> Sale:
        """Insert a sale. Returns the stored row (timestamps filled)."""

    @abstractmethod
    async def update_sale(self, sale_id: str, fields: dict) -> Sale:
        """Patch columns of a sale. Returns the updated row."""

    @abstractmethod
    async def get_client(self, client_id: str) -> Optional[Client]:
        """Get a client by ID."""

    @abstractmethod
    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        """Get a plan by ID."""

    @abstractmethod
    async def get_company(self, company_id: str) -> Optional[Company]:
        """Get a company by ID."""

    # ---- Beneficiaries ----

    @abstractmethod
    async def list_beneficiaries(self, sale_id: str) -> List[Beneficiary]:
        """Beneficiaries of a sale, oldest first."""

    @abstractmethod
    async def get_beneficiary(self, beneficiary_id: str) -> Optional[Beneficiary]:
        """Get a beneficiary by ID."""

    @abstractmethod
    async def insert_beneficiary(self, beneficiary: Beneficiary) -> Beneficiary:
        """Insert a beneficiary."""

    @abstractmethod
    async def update_beneficiary(self, beneficiary_id: str, fields: dict) -> Beneficiary:
        """Patch columns of a beneficiary."""

    @abstractmethod
    async def delete_beneficiary(self, beneficiary_id: str) -> None:
        """Delete a beneficiary."""

    # ---- Templates ----

    @abstractmethod
    async def list_sale_templates(self, sale_id: str) -> List[Template]:
        """Templates associated with a sale (joined through sale_templates)."""

    @abstractmethod
    async def add_sale_template(self, sale_id: str, template_id: str) -> SaleTemplate:
        """Associate a template with a sale."""

    @abstractmethod
    async def list_template_attachments(self, template_ids: List[str]) -> List[TemplateAttachment]:
        """Attachments owned by any of the given templates."""

    @abstractmethod
    async def insert_template_attachment(self, attachment: TemplateAttachment) -> TemplateAttachment:
        """Register an uploaded file on a template."""

    @abstractmethod
    async def get_questionnaire_responses(self, sale_id: str) -> Dict[str, str]:
        """Questionnaire answers of a sale keyed by question identifier."""

    # ---- Generated documents ----

    @abstractmethod
    async def list_documents(self, sale_id: str) -> List[GeneratedDocument]:
        """All documents of a sale, oldest first."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[GeneratedDocument]:
        """Get a document by ID."""

    @abstractmethod
    async def insert_document(self, document: GeneratedDocument) -> GeneratedDocument:
        """Insert a generated document."""

    @abstractmethod
    async def update_documents(self, document_ids: List[str], fields: dict) -> int:
        """Patch several documents. Returns count updated."""

    @abstractmethod
    async def delete_documents(self, document_ids: List[str]) -> int:
        """Delete documents by ID. Returns count deleted."""

    # ---- Workflow ----

    @abstractmethod
    async def insert_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        """Append a history record. Records are never updated."""

    @abstractmethod
    async def list_transitions(self, sale_id: str) -> List[WorkflowTransition]:
        """History of a sale, oldest first."""

    @abstractmethod
    async def get_workflow_config(self, company_id: str) -> Optional[WorkflowConfig]:
        """Company transition policy, if any."""

    @abstractmethod
    async def insert_information_request(self, request: InformationRequest) -> InformationRequest:
        """Insert an information request."""

    @abstractmethod
    async def get_information_request(self, request_id: str) -> Optional[InformationRequest]:
        """Get an information request by ID."""

    @abstractmethod
    async def update_information_request(self, request_id: str, fields: dict) -> InformationRequest:
        """Patch an information request."""

    @abstractmethod
    async def list_information_requests(
        self, sale_id: str, status: Optional[str] = None
    ) -> List[InformationRequest]:
        """Information requests of a sale, optionally filtered by status."""

    # ---- Signature links ----

    @abstractmethod
    async def insert_signature_link(self, link: SignatureLink) -> SignatureLink:
        """Insert a signature link."""

    @abstractmethod
    async def list_signature_links(self, sale_id: str) -> List[SignatureLink]:
        """All links of a sale, oldest first."""

    @abstractmethod
    async def get_signature_link(self, link_id: str) -> Optional[SignatureLink]:
        """Get a link by ID."""

    @abstractmethod
    async def get_signature_link_by_token(self, token: str) -> Optional[SignatureLink]:
        """Get a link by its public token."""

    @abstractmethod
    async def update_signature_link(self, link_id: str, fields: dict) -> SignatureLink:
        """Patch a signature link."""

    # ---- Diagnostics and coordination ----

    @abstractmethod
    async def insert_process_trace(self, trace: ProcessTrace) -> ProcessTrace:
        """Append a process trace event."""

    @abstractmethod
    async def list_process_traces(self, sale_id: str) -> List[ProcessTrace]:
        """Trace events of a sale, oldest first."""

    @abstractmethod
    async def acquire_generation_lease(self, sale_id: str, holder: str, ttl_seconds: int) -> bool:
        """Take the generation lease for a sale. An expired lease may be taken over.
        Returns False when another holder owns a live lease."""

    @abstractmethod
    async def release_generation_lease(self, sale_id: str, holder: str) -> None:
        """Release a lease held by holder. No-op when not held."""

    @abstractmethod
    async def get_status(self) -> dict:
        """Backend status info (table counts, connection status)."""


class FileStoreInterface(ABC):
    """Object storage for uploaded files."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Upload bytes under path. Returns the stored path."""

    @abstractmethod
    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Time-bounded read URL for a previously uploaded file."""


class NotificationSink(ABC):
    """Destination of user notifications. Delivery is not guaranteed."""

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Record a notification for its user."""
