"""Supabase backend implementing the data access interfaces"""

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

from insurance_sales.db.base import DatabaseInterface, FileStoreInterface, NotificationSink
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
    TransitionRule,
    WorkflowConfig,
    WorkflowTransition,
)
from insurance_sales.services.errors import SaleNotFoundError, StorageError
from insurance_sales.utils.config import get_settings

logger = logging.getLogger(__name__)

# Lazy singletons, created on first use so memory mode never needs credentials
_supabase_client = None
_service_client = None

UNIQUE_VIOLATION = "23505"


async def _get_supabase_client():
    """Get or create the singleton async Supabase client (anon key)."""
    global _supabase_client
    if _supabase_client is None:
        from supabase import AsyncClientOptions, acreate_client

        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY must be set when DB_MODE=supabase"
            )
        _supabase_client = await acreate_client(
            settings.supabase_url,
            settings.supabase_key,
            options=AsyncClientOptions(
                postgrest_client_timeout=10,
                storage_client_timeout=30,
            ),
        )
    return _supabase_client


async def _get_service_client():
    """Get or create the singleton async service-role client (bypasses RLS)."""
    global _service_client
    if _service_client is None:
        from supabase import AsyncClientOptions, acreate_client

        settings = get_settings()
        key = settings.supabase_service_key or settings.supabase_key
        if not settings.supabase_url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set for write operations"
            )
        _service_client = await acreate_client(
            settings.supabase_url,
            key,
            options=AsyncClientOptions(
                postgrest_client_timeout=10,
                storage_client_timeout=30,
            ),
        )
    return _service_client


def _serialize(value):
    """Convert enums, dates and nested containers into JSON-safe values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def _row(model) -> dict:
    return model.model_dump(mode="json", exclude_none=True)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SupabaseDatabase(DatabaseInterface):
    """Supabase implementation of DatabaseInterface."""

    def __init__(self):
        self._read = _get_supabase_client
        self._write = _get_service_client

    async def _execute(self, operation: str, query):
        try:
            return await query.execute()
        except Exception as e:
            logger.error(f"Supabase {operation} failed: {e}")
            raise StorageError(operation, e) from e

    async def _select_one(self, operation: str, table: str, column: str, value: str) -> Optional[dict]:
        client = await self._read()
        result = await self._execute(
            operation, client.table(table).select("*").eq(column, value).limit(1)
        )
        return result.data[0] if result.data else None

    async def _insert(self, operation: str, table: str, data: dict) -> dict:
        client = await self._write()
        result = await self._execute(operation, client.table(table).insert(data))
        return result.data[0]

    async def _update(self, operation: str, table: str, row_id: str, fields: dict) -> dict:
        client = await self._write()
        result = await self._execute(
            operation, client.table(table).update(_serialize(fields)).eq("id", row_id)
        )
        if not result.data:
            raise SaleNotFoundError(f"{table} row not found: {row_id}")
        return result.data[0]

    # ---- Sales and parties ----

    async def get_sale(self, sale_id: str) -> Optional[Sale]:
        row = await self._select_one("get_sale", "sales", "id", sale_id)
        return Sale.model_validate(row) if row else None

    async def insert_sale(self, sale: Sale) -> Sale:
        row = await self._insert("insert_sale", "sales", _row(sale))
        return Sale.model_validate(row)

    async def update_sale(self, sale_id: str, fields: dict) -> Sale:
        fields = {**fields, "updated_at": _utc_now()}
        row = await self._update("update_sale", "sales", sale_id, fields)
        return Sale.model_validate(row)

    async def get_client(self, client_id: str) -> Optional[Client]:
        row = await self._select_one("get_client", "clients", "id", client_id)
        return Client.model_validate(row) if row else None

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        row = await self._select_one("get_plan", "plans", "id", plan_id)
        return Plan.model_validate(row) if row else None

    async def get_company(self, company_id: str) -> Optional[Company]:
        row = await self._select_one("get_company", "companies", "id", company_id)
        return Company.model_validate(row) if row else None

    # ---- Beneficiaries ----

    async def list_beneficiaries(self, sale_id: str) -> List[Beneficiary]:
        client = await self._read()
        result = await self._execute(
            "list_beneficiaries",
            client.table("beneficiaries").select("*").eq("sale_id", sale_id).order("created_at"),
        )
        return [Beneficiary.model_validate(r) for r in result.data]

    async def get_beneficiary(self, beneficiary_id: str) -> Optional[Beneficiary]:
        row = await self._select_one("get_beneficiary", "beneficiaries", "id", beneficiary_id)
        return Beneficiary.model_validate(row) if row else None

    async def insert_beneficiary(self, beneficiary: Beneficiary) -> Beneficiary:
        row = await self._insert("insert_beneficiary", "beneficiaries", _row(beneficiary))
        return Beneficiary.model_validate(row)

    async def update_beneficiary(self, beneficiary_id: str, fields: dict) -> Beneficiary:
        row = await self._update("update_beneficiary", "beneficiaries", beneficiary_id, fields)
        return Beneficiary.model_validate(row)

    async def delete_beneficiary(self, beneficiary_id: str) -> None:
        client = await self._write()
        await self._execute(
            "delete_beneficiary", client.table("beneficiaries").delete().eq("id", beneficiary_id)
        )

    # ---- Templates ----

    async def list_sale_templates(self, sale_id: str) -> List[Template]:
        client = await self._read()
        result = await self._execute(
            "list_sale_templates",
            client.table("sale_templates")
            .select("template_id, templates(*)")
            .eq("sale_id", sale_id)
            .order("created_at"),
        )
        return [Template.model_validate(r["templates"]) for r in result.data if r.get("templates")]

    async def add_sale_template(self, sale_id: str, template_id: str) -> SaleTemplate:
        row = await self._insert(
            "add_sale_template",
            "sale_templates",
            _row(SaleTemplate(sale_id=sale_id, template_id=template_id)),
        )
        return SaleTemplate.model_validate(row)

    async def list_template_attachments(self, template_ids: List[str]) -> List[TemplateAttachment]:
        if not template_ids:
            return []
        client = await self._read()
        result = await self._execute(
            "list_template_attachments",
            client.table("template_attachments")
            .select("*")
            .in_("template_id", template_ids)
            .order("created_at"),
        )
        return [TemplateAttachment.model_validate(r) for r in result.data]

    async def insert_template_attachment(self, attachment: TemplateAttachment) -> TemplateAttachment:
        row = await self._insert("insert_template_attachment", "template_attachments", _row(attachment))
        return TemplateAttachment.model_validate(row)

    async def get_questionnaire_responses(self, sale_id: str) -> Dict[str, str]:
        client = await self._read()
        result = await self._execute(
            "get_questionnaire_responses",
            client.table("template_responses")
            .select("question_id, response_value")
            .eq("sale_id", sale_id)
            .order("updated_at"),
        )
        return {r["question_id"]: r.get("response_value") or "" for r in result.data}

    # ---- Generated documents ----

    async def list_documents(self, sale_id: str) -> List[GeneratedDocument]:
        client = await self._read()
        result = await self._execute(
            "list_documents",
            client.table("documents").select("*").eq("sale_id", sale_id).order("created_at"),
        )
        return [GeneratedDocument.model_validate(r) for r in result.data]

    async def get_document(self, document_id: str) -> Optional[GeneratedDocument]:
        row = await self._select_one("get_document", "documents", "id", document_id)
        return GeneratedDocument.model_validate(row) if row else None

    async def insert_document(self, document: GeneratedDocument) -> GeneratedDocument:
        row = await self._insert("insert_document", "documents", _row(document))
        return GeneratedDocument.model_validate(row)

    async def update_documents(self, document_ids: List[str], fields: dict) -> int:
        if not document_ids:
            return 0
        client = await self._write()
        result = await self._execute(
            "update_documents",
            client.table("documents").update(_serialize(fields)).in_("id", document_ids),
        )
        return len(result.data)

    async def delete_documents(self, document_ids: List[str]) -> int:
        if not document_ids:
            return 0
        client = await self._write()
        result = await self._execute(
            "delete_documents", client.table("documents").delete().in_("id", document_ids)
        )
        return len(result.data)

    # ---- Workflow ----

    async def insert_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        row = await self._insert("insert_transition", "sale_workflow_states", _row(transition))
        return WorkflowTransition.model_validate(row)

    async def list_transitions(self, sale_id: str) -> List[WorkflowTransition]:
        client = await self._read()
        result = await self._execute(
            "list_transitions",
            client.table("sale_workflow_states").select("*").eq("sale_id", sale_id).order("created_at"),
        )
        return [WorkflowTransition.model_validate(r) for r in result.data]

    async def get_workflow_config(self, company_id: str) -> Optional[WorkflowConfig]:
        row = await self._select_one(
            "get_workflow_config", "company_workflow_config", "company_id", company_id
        )
        if not row:
            return None
        rules = []
        for t in (row.get("workflow_config") or {}).get("transitions", []):
            conditions = [
                c.get("key", "") if isinstance(c, dict) else str(c)
                for c in t.get("conditions") or []
            ]
            rules.append(TransitionRule(
                from_status=t["from"],
                to_status=t["to"],
                allowed_roles=t.get("allowed_roles") or [],
                conditions=[c for c in conditions if c],
                require_note=bool(t.get("require_note", False)),
            ))
        return WorkflowConfig(
            id=row.get("id", ""),
            company_id=row["company_id"],
            is_active=bool(row.get("is_active", True)),
            transitions=rules,
        )

    async def insert_information_request(self, request: InformationRequest) -> InformationRequest:
        row = await self._insert("insert_information_request", "information_requests", _row(request))
        return InformationRequest.model_validate(row)

    async def get_information_request(self, request_id: str) -> Optional[InformationRequest]:
        row = await self._select_one("get_information_request", "information_requests", "id", request_id)
        return InformationRequest.model_validate(row) if row else None

    async def update_information_request(self, request_id: str, fields: dict) -> InformationRequest:
        row = await self._update("update_information_request", "information_requests", request_id, fields)
        return InformationRequest.model_validate(row)

    async def list_information_requests(
        self, sale_id: str, status: Optional[str] = None
    ) -> List[InformationRequest]:
        client = await self._read()
        query = client.table("information_requests").select("*").eq("sale_id", sale_id)
        if status is not None:
            query = query.eq("status", _serialize(status))
        result = await self._execute("list_information_requests", query.order("created_at"))
        return [InformationRequest.model_validate(r) for r in result.data]

    # ---- Signature links ----

    async def insert_signature_link(self, link: SignatureLink) -> SignatureLink:
        row = await self._insert("insert_signature_link", "signature_links", _row(link))
        return SignatureLink.model_validate(row)

    async def list_signature_links(self, sale_id: str) -> List[SignatureLink]:
        client = await self._read()
        result = await self._execute(
            "list_signature_links",
            client.table("signature_links").select("*").eq("sale_id", sale_id).order("created_at"),
        )
        return [SignatureLink.model_validate(r) for r in result.data]

    async def get_signature_link(self, link_id: str) -> Optional[SignatureLink]:
        row = await self._select_one("get_signature_link", "signature_links", "id", link_id)
        return SignatureLink.model_validate(row) if row else None

    async def get_signature_link_by_token(self, token: str) -> Optional[SignatureLink]:
        row = await self._select_one("get_signature_link_by_token", "signature_links", "token", token)
        return SignatureLink.model_validate(row) if row else None

    async def update_signature_link(self, link_id: str, fields: dict) -> SignatureLink:
        row = await self._update("update_signature_link", "signature_links", link_id, fields)
        return SignatureLink.model_validate(row)

    # ---- Diagnostics and coordination ----

    async def insert_process_trace(self, trace: ProcessTrace) -> ProcessTrace:
        row = await self._insert("insert_process_trace", "process_traces", _row(trace))
        return ProcessTrace.model_validate(row)

    async def list_process_traces(self, sale_id: str) -> List[ProcessTrace]:
        client = await self._read()
        result = await self._execute(
            "list_process_traces",
            client.table("process_traces").select("*").eq("sale_id", sale_id).order("created_at"),
        )
        return [ProcessTrace.model_validate(r) for r in result.data]

    async def acquire_generation_lease(self, sale_id: str, holder: str, ttl_seconds: int) -> bool:
        client = await self._write()
        now = _utc_now()
        # Clear a stale lease first; sale_id is the primary key of the table
        await self._execute(
            "acquire_generation_lease",
            client.table("sale_generation_leases")
            .delete()
            .eq("sale_id", sale_id)
            .lt("expires_at", now.isoformat()),
        )
        try:
            await client.table("sale_generation_leases").insert({
                "sale_id": sale_id,
                "holder": holder,
                "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
            }).execute()
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                logger.info(f"Generation lease for sale {sale_id} is held by another caller")
                return False
            raise StorageError("acquire_generation_lease", e) from e
        return True

    async def release_generation_lease(self, sale_id: str, holder: str) -> None:
        client = await self._write()
        await self._execute(
            "release_generation_lease",
            client.table("sale_generation_leases").delete().eq("sale_id", sale_id).eq("holder", holder),
        )

    async def get_status(self) -> dict:
        """Count rows of the main tables; raises if the schema is missing."""
        client = await self._read()
        tables = {}
        for table in ("sales", "beneficiaries", "templates", "documents", "signature_links", "sale_workflow_states"):
            result = await self._execute(
                "get_status", client.table(table).select("id", count="exact").limit(1)
            )
            tables[table] = result.count or 0
        return {"backend": "supabase", "connected": True, "tables": tables}


class SupabaseFileStore(FileStoreInterface):
    """Supabase Storage bucket access."""

    def __init__(self, bucket: Optional[str] = None):
        self.bucket = bucket or get_settings().storage_bucket

    async def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        client = await _get_service_client()
        try:
            await client.storage.from_(self.bucket).upload(
                path, data, {"content-type": content_type, "upsert": "true"}
            )
        except Exception as e:
            raise StorageError("upload", e) from e
        logger.info(f"Uploaded {path} to bucket {self.bucket}")
        return path

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        client = await _get_service_client()
        try:
            result = await client.storage.from_(self.bucket).create_signed_url(path, expires_in)
        except Exception as e:
            raise StorageError("create_signed_url", e) from e
        return result.get("signedURL") or result.get("signedUrl") or ""


class SupabaseNotificationSink(NotificationSink):
    """Writes notifications to the `notifications` table."""

    async def send(self, notification: Notification) -> None:
        client = await _get_service_client()
        try:
            await client.table("notifications").insert(_row(notification)).execute()
        except Exception as e:
            raise StorageError("send_notification", e) from e


def get_database(mode: str = None) -> DatabaseInterface:
    """Factory: return the backend selected by DB_MODE.

    Args:
        mode: 'supabase' or 'memory'. If None, reads from settings.
    """
    if mode is None:
        mode = get_settings().db_mode

    if mode == "supabase":
        return SupabaseDatabase()

    from insurance_sales.db.memory import MemoryDatabase
    return MemoryDatabase()


def get_file_store(mode: str = None) -> FileStoreInterface:
    """Factory for the file store matching DB_MODE."""
    if mode is None:
        mode = get_settings().db_mode
    if mode == "supabase":
        return SupabaseFileStore()

    from insurance_sales.db.memory import MemoryFileStore
    return MemoryFileStore()


def get_notification_sink(mode: str = None) -> NotificationSink:
    """Factory for the notification sink matching DB_MODE."""
    if mode is None:
        mode = get_settings().db_mode
    if mode == "supabase":
        return SupabaseNotificationSink()

    from insurance_sales.db.memory import MemoryNotificationSink
    return MemoryNotificationSink()
