"""Document generation orchestrator.

Materializes the document set of an approved sale:

- every associated template yields exactly one shared artifact: a rendered
  document when it has body content, otherwise one annex per attachment;
- declaration templates also yield one document per adherent who must sign,
  rendered against that adherent's own data and health answers;
- generation issues signature links and moves the sale to 'enviado' once the
  company's transition policy allows it.

Regeneration deletes the pending template-generated documents, keeps signed
and final ones (and does not re-emit what they cover), and never issues new
links. Storage failures stop the cycle without rolling back what was already
written; DocumentGenerationError carries that partial result.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from insurance_sales.db.base import DatabaseInterface
from insurance_sales.models import (
    Actor,
    AuditStatus,
    Beneficiary,
    DocumentType,
    GeneratedDocument,
    Sale,
    SaleStatus,
    SignatureLink,
    Template,
    TemplateAttachment,
    UserRole,
)
from insurance_sales.services import health_declaration
from insurance_sales.services import trace as trace_events
from insurance_sales.services.errors import (
    AuthorizationError,
    DocumentGenerationError,
    GenerationInProgressError,
    PolicyDeniedError,
    SaleValidationError,
    StorageError,
)
from insurance_sales.services.placeholders import PlaceholderResolver
from insurance_sales.services.policy import TransitionPolicyChecker
from insurance_sales.services.signatures import SignatureLinkService
from insurance_sales.services.template_engine import TemplateEngine
from insurance_sales.services.trace import ProcessTraceService
from insurance_sales.services.workflow import AUDIT_ROLES, SaleWorkflowService
from insurance_sales.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

GENERATION_ROLES = AUDIT_ROLES | {UserRole.SUPERVISOR}
REGENERABLE_STATUSES = {SaleStatus.APROBADO_PARA_TEMPLATES, SaleStatus.ENVIADO}

# (template_id, beneficiary_id, file reference) identifies one artifact
ArtifactKey = Tuple[Optional[str], Optional[str], Optional[str]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _artifact_key(document: GeneratedDocument) -> ArtifactKey:
    return (document.template_id, document.beneficiary_id, document.file_url)


class GenerationResult(BaseModel):
    """Outcome of one generation cycle"""
    sale_id: str
    regenerated: bool = False
    documents: List[GeneratedDocument] = []
    signature_links: List[SignatureLink] = []
    deleted_document_ids: List[str] = []
    preserved_document_ids: List[str] = []
    unresolved: Dict[str, List[str]] = {}   # document name -> placeholders
    warnings: List[str] = []
    status: Optional[SaleStatus] = None


class DocumentGenerationService:
    """Generates and regenerates a sale's document set."""

    def __init__(
        self,
        db: DatabaseInterface,
        workflow: SaleWorkflowService,
        policy: TransitionPolicyChecker,
        signatures: SignatureLinkService,
        trace: ProcessTraceService,
        settings: Optional[Settings] = None,
        engine: Optional[TemplateEngine] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.db = db
        self.workflow = workflow
        self.policy = policy
        self.signatures = signatures
        self.trace = trace
        self.settings = settings or get_settings()
        self.engine = engine or TemplateEngine()
        self.clock = clock

    async def generate(self, sale_id: str, actor: Actor) -> GenerationResult:
        """First generation for an approved sale."""
        return await self._run(sale_id, actor, regenerate=False)

    async def regenerate(self, sale_id: str, actor: Actor) -> GenerationResult:
        """Rebuild pending documents from current data; signed/final ones survive."""
        return await self._run(sale_id, actor, regenerate=True)

    async def _run(self, sale_id: str, actor: Actor, regenerate: bool) -> GenerationResult:
        if actor.role not in GENERATION_ROLES:
            raise AuthorizationError(f'El rol "{actor.role.value}" no puede generar documentos')

        holder = f"{actor.user_id}:{uuid.uuid4().hex[:8]}"
        if not await self.db.acquire_generation_lease(
            sale_id, holder, self.settings.generation_lease_seconds
        ):
            raise GenerationInProgressError(sale_id)

        result = GenerationResult(sale_id=sale_id, regenerated=regenerate)
        try:
            await self._cycle(sale_id, actor, regenerate, result)
        except StorageError as e:
            await self.trace.record(
                sale_id,
                trace_events.GENERATION_FAILED,
                performed_by=actor.user_id,
                details={"error": str(e), "documents_created": len(result.documents)},
            )
            raise DocumentGenerationError(
                f"La generación de documentos se interrumpió tras crear "
                f"{len(result.documents)} documento(s): {e}",
                result,
                e,
            ) from e
        finally:
            await self.db.release_generation_lease(sale_id, holder)
        return result

    # ---- Preconditions ----

    async def _check_ready(self, sale: Sale, regenerate: bool) -> None:
        if sale.audit_status != AuditStatus.APROBADO:
            raise SaleValidationError("La venta no está aprobada por auditoría")
        if regenerate:
            if sale.status not in REGENERABLE_STATUSES:
                raise SaleValidationError(
                    f"No se pueden regenerar documentos en estado '{sale.status.value}'"
                )
        else:
            if sale.status != SaleStatus.APROBADO_PARA_TEMPLATES:
                raise SaleValidationError(
                    f"No se pueden generar documentos en estado '{sale.status.value}'"
                )
            existing = await self.db.list_documents(sale.id)
            if any(d.generated_from_template for d in existing):
                raise SaleValidationError("La venta ya tiene documentos generados; use regenerar")
        if not sale.client_id:
            raise SaleValidationError("La venta debe tener un cliente asignado")
        if not sale.plan_id:
            raise SaleValidationError("La venta debe tener un plan asignado")

    # ---- Cycle ----

    async def _cycle(self, sale_id: str, actor: Actor, regenerate: bool, result: GenerationResult) -> None:
        sale = await self.workflow.get_sale(sale_id)
        await self._check_ready(sale, regenerate)

        client = await self.db.get_client(sale.client_id)
        if client is None:
            raise SaleValidationError("Cliente de la venta no encontrado")
        plan = await self.db.get_plan(sale.plan_id)
        company = await self.db.get_company(sale.company_id) if sale.company_id else None
        # always re-read: health answers may have changed since the sale was loaded
        beneficiaries = await self.db.list_beneficiaries(sale.id)
        templates = await self.db.list_sale_templates(sale.id)
        if not templates:
            raise SaleValidationError("La venta no tiene templates asignados")
        attachments = await self.db.list_template_attachments([t.id for t in templates])
        structured = await self.db.get_questionnaire_responses(sale.id)

        covered: Set[ArtifactKey] = set()
        if regenerate:
            covered = await self._clear_previous(sale.id, result)

        titular = next((b for b in beneficiaries if b.is_primary), None)
        reference_date = self.clock().date()
        resolver = PlaceholderResolver(
            sale=sale,
            client=client,
            plan=plan,
            company=company,
            beneficiaries=beneficiaries,
            responses=self._responses(structured, titular),
            reference_date=reference_date,
            signature_base_url=self.settings.signature_base_url,
            currency_symbol=self.settings.currency_symbol,
        )
        adherents = [b for b in beneficiaries if not b.is_primary and b.requires_signature]

        rendered: Set[str] = set()
        for template in templates:
            kind = template.classify()
            if template.has_content:
                rendered.add(template.id)
                await self._emit_content(sale, template, kind, resolver, None, covered, actor, result)
            elif not any(a.template_id == template.id for a in attachments):
                message = f"El template '{template.name}' no tiene contenido ni archivos adjuntos"
                logger.warning(f"Sale {sale.id}: {message}")
                result.warnings.append(message)

        for template in templates:
            if template.id not in rendered or template.classify() != DocumentType.DDJJ_SALUD:
                continue
            for adherent in adherents:
                scoped = resolver.for_beneficiary(
                    adherent, self._responses(structured, adherent, include_health=False)
                )
                await self._emit_content(
                    sale, template, DocumentType.DDJJ_SALUD, scoped, adherent, covered, actor, result
                )

        for attachment in attachments:
            if attachment.template_id in rendered:
                continue
            await self._emit_attachment(sale, attachment, covered, result)

        if regenerate:
            # existing links stay valid; only signers left without one get a link
            result.signature_links = await self.signatures.create_missing_links(sale, client, beneficiaries)
        else:
            result.signature_links = await self.signatures.create_links(sale, client, beneficiaries)

        result.status = sale.status
        if sale.status == SaleStatus.APROBADO_PARA_TEMPLATES:
            result.status = await self._send(sale, actor, result)

        await self.trace.record(
            sale.id,
            trace_events.DOCUMENTS_REGENERATED if regenerate else trace_events.DOCUMENTS_GENERATED,
            performed_by=actor.user_id,
            details={
                "documents": len(result.documents),
                "deleted": len(result.deleted_document_ids),
                "preserved": len(result.preserved_document_ids),
                "links": len(result.signature_links),
            },
        )
        logger.info(
            f"Sale {sale.id}: {'regenerated' if regenerate else 'generated'} "
            f"{len(result.documents)} documents"
        )

    async def _clear_previous(self, sale_id: str, result: GenerationResult) -> Set[ArtifactKey]:
        """Delete replaceable documents; return the artifacts still covered."""
        existing = [d for d in await self.db.list_documents(sale_id) if d.generated_from_template]
        stale = [d.id for d in existing if not d.is_protected]
        kept = [d for d in existing if d.is_protected]
        await self.db.delete_documents(stale)
        result.deleted_document_ids = stale
        result.preserved_document_ids = [d.id for d in kept]
        logger.info(f"Sale {sale_id}: removed {len(stale)} documents, kept {len(kept)} signed/final")
        return {_artifact_key(d) for d in kept}

    def _responses(
        self,
        structured: Dict[str, str],
        person: Optional[Beneficiary],
        include_health: bool = True,
    ) -> Dict[str, str]:
        """Structured answers over the person's decoded health field.

        The titular's structured ddjj_* answers must not leak into an
        adherent's declaration, hence include_health=False for adherents.
        """
        responses: Dict[str, str] = {}
        if person is not None:
            responses.update(
                health_declaration.placeholders_from_text(person.preexisting_conditions_detail)
            )
        for key, value in structured.items():
            if not include_health and key.lower().startswith("ddjj"):
                continue
            if value not in (None, ""):
                responses[key] = value
        return responses

    async def _emit_content(
        self,
        sale: Sale,
        template: Template,
        kind: DocumentType,
        resolver: PlaceholderResolver,
        beneficiary: Optional[Beneficiary],
        covered: Set[ArtifactKey],
        actor: Actor,
        result: GenerationResult,
    ) -> None:
        beneficiary_id = beneficiary.id if beneficiary else None
        if (template.id, beneficiary_id, None) in covered:
            return

        rendered = self.engine.render(template.content, resolver)
        name = f"{template.name} - {beneficiary.full_name}" if beneficiary else template.name
        is_annex = kind == DocumentType.ANEXO
        document = await self.db.insert_document(GeneratedDocument(
            sale_id=sale.id,
            template_id=template.id,
            name=name,
            document_type=kind,
            content=rendered.content,
            requires_signature=not is_annex,
            is_final=is_annex,
            generated_from_template=True,
            beneficiary_id=beneficiary_id,
            metadata={"generated_at": self.clock().isoformat()},
        ))
        result.documents.append(document)

        if rendered.unresolved:
            result.unresolved[name] = rendered.unresolved
            await self.trace.record_unresolved(
                sale.id, name, rendered.unresolved,
                performed_by=actor.user_id, beneficiary_id=beneficiary_id,
            )

    async def _emit_attachment(
        self,
        sale: Sale,
        attachment: TemplateAttachment,
        covered: Set[ArtifactKey],
        result: GenerationResult,
    ) -> None:
        if (attachment.template_id, None, attachment.file_path) in covered:
            return
        document = await self.db.insert_document(GeneratedDocument(
            sale_id=sale.id,
            template_id=attachment.template_id,
            name=attachment.file_name,
            document_type=DocumentType.ANEXO,
            file_url=attachment.file_path,
            requires_signature=False,
            is_final=True,
            generated_from_template=True,
            metadata={"generated_at": self.clock().isoformat(), "file_type": attachment.file_type},
        ))
        result.documents.append(document)

    async def _send(self, sale: Sale, actor: Actor, result: GenerationResult) -> SaleStatus:
        decision = await self.policy.check(sale, SaleStatus.ENVIADO, actor.role)
        if not decision.allowed:
            await self.trace.record(
                sale.id,
                trace_events.GENERATION_FAILED,
                performed_by=actor.user_id,
                details={"policy_reasons": decision.reasons, "documents_created": len(result.documents)},
            )
            raise PolicyDeniedError(sale.id, SaleStatus.ENVIADO.value, decision.reasons, result)
        updated = await self.workflow.mark_sent(
            sale.id,
            Actor.system(),
            details={"triggered_by": actor.user_id, "documents": len(result.documents)},
        )
        return updated.status
