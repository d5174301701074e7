"""Signature link lifecycle: issue, view, complete, revoke and resend"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, FrozenSet, List, Optional

from insurance_sales.db.base import DatabaseInterface
from insurance_sales.models import (
    Actor,
    Beneficiary,
    Client,
    DocumentStatus,
    GeneratedDocument,
    RecipientType,
    Sale,
    SaleStatus,
    SignatureLink,
    SignatureLinkStatus,
    UserRole,
)
from insurance_sales.services import trace as trace_events
from insurance_sales.services.errors import AuthorizationError, SaleNotFoundError, SaleValidationError
from insurance_sales.services.trace import ProcessTraceService
from insurance_sales.services.workflow import AUDIT_ROLES, SALESPERSON_ROLES, SaleWorkflowService
from insurance_sales.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

RESEND_ROLES = AUDIT_ROLES | SALESPERSON_ROLES | {UserRole.SUPERVISOR}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _belongs_to(document: GeneratedDocument, link: SignatureLink) -> bool:
    """Titular links cover shared documents; adherent links cover their own"""
    if link.recipient_type == RecipientType.ADHERENTE:
        return document.beneficiary_id == link.recipient_id
    return document.beneficiary_id is None


class SignatureLinkService:
    """Creates and settles the per-signer links of a sale."""

    def __init__(
        self,
        db: DatabaseInterface,
        workflow: SaleWorkflowService,
        trace: ProcessTraceService,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.db = db
        self.workflow = workflow
        self.trace = trace
        self.settings = settings or get_settings()
        self.clock = clock

    def _expiry(self) -> datetime:
        return self.clock() + timedelta(days=self.settings.signature_link_expiration_days)

    def link_url(self, link: SignatureLink) -> str:
        return f"{self.settings.signature_base_url.rstrip('/')}/{link.token}"

    async def create_links(
        self,
        sale: Sale,
        client: Client,
        beneficiaries: List[Beneficiary],
        skip: FrozenSet[str] = frozenset(),
    ) -> List[SignatureLink]:
        """One link for the titular plus one per adherent that must sign.

        Recipients whose id is in `skip` are left out.
        """
        links = []
        if client.id not in skip:
            links.append(await self.db.insert_signature_link(SignatureLink(
                sale_id=sale.id,
                recipient_type=RecipientType.TITULAR,
                recipient_email=client.email or "",
                recipient_phone=client.phone or None,
                recipient_id=client.id,
                expires_at=self._expiry(),
            )))
        for beneficiary in beneficiaries:
            if beneficiary.is_primary or not beneficiary.requires_signature:
                continue
            if beneficiary.id in skip:
                continue
            links.append(await self.db.insert_signature_link(SignatureLink(
                sale_id=sale.id,
                recipient_type=RecipientType.ADHERENTE,
                recipient_email=beneficiary.email or "",
                recipient_phone=beneficiary.phone or None,
                recipient_id=beneficiary.id,
                expires_at=self._expiry(),
            )))
        logger.info(f"Created {len(links)} signature links for sale {sale.id}")
        return links

    async def create_missing_links(
        self, sale: Sale, client: Client, beneficiaries: List[Beneficiary]
    ) -> List[SignatureLink]:
        """Issue links only for signers without a live (non-revoked) link."""
        existing = await self.db.list_signature_links(sale.id)
        linked = frozenset(
            l.recipient_id for l in existing
            if l.status != SignatureLinkStatus.REVOCADO and l.recipient_id
        )
        return await self.create_links(sale, client, beneficiaries, skip=linked)

    async def _get_by_token(self, token: str) -> SignatureLink:
        link = await self.db.get_signature_link_by_token(token)
        if link is None:
            raise SaleNotFoundError("Enlace de firma no encontrado")
        return link

    def _ensure_usable(self, link: SignatureLink) -> None:
        if link.status == SignatureLinkStatus.REVOCADO:
            raise SaleValidationError("El enlace de firma fue revocado")
        if link.status == SignatureLinkStatus.COMPLETADO:
            raise SaleValidationError("El enlace de firma ya fue utilizado")
        if link.expires_at <= self.clock():
            raise SaleValidationError("El enlace de firma expiró")

    async def open_link(self, token: str) -> SignatureLink:
        """Signer opened the link: mark it viewed."""
        link = await self._get_by_token(token)
        self._ensure_usable(link)
        if link.status == SignatureLinkStatus.PENDIENTE:
            link = await self.db.update_signature_link(link.id, {"status": SignatureLinkStatus.VISUALIZADO})
        return link

    async def documents_for_link(self, link: SignatureLink) -> List[GeneratedDocument]:
        docs = await self.db.list_documents(link.sale_id)
        return [d for d in docs if _belongs_to(d, link)]

    async def complete_signature(self, token: str, signed_ip: Optional[str] = None) -> SignatureLink:
        """Settle a link; moves the sale to 'firmado' once every signer is done."""
        link = await self._get_by_token(token)
        self._ensure_usable(link)
        now = self.clock()

        signable = [
            d.id for d in await self.documents_for_link(link)
            if d.requires_signature and d.status == DocumentStatus.PENDIENTE
        ]
        await self.db.update_documents(signable, {"status": DocumentStatus.FIRMADO, "signed_at": now})
        link = await self.db.update_signature_link(link.id, {
            "status": SignatureLinkStatus.COMPLETADO,
            "completed_at": now,
        })
        await self.trace.record(
            link.sale_id,
            trace_events.SIGNATURE_COMPLETED,
            performed_by=link.recipient_id,
            details={"link_id": link.id, "documents": signable, "signed_ip": signed_ip},
        )
        logger.info(f"Signature completed on link {link.id} ({len(signable)} documents)")

        links = [
            l for l in await self.db.list_signature_links(link.sale_id)
            if l.status != SignatureLinkStatus.REVOCADO
        ]
        if links and all(l.status == SignatureLinkStatus.COMPLETADO for l in links):
            sale = await self.workflow.get_sale(link.sale_id)
            if sale.status == SaleStatus.ENVIADO:
                await self.workflow.mark_signed(sale.id, Actor.system())
        return link

    async def revoke_link(self, link_id: str) -> SignatureLink:
        link = await self.db.get_signature_link(link_id)
        if link is None:
            raise SaleNotFoundError(f"Enlace de firma no encontrado: {link_id}")
        return await self.db.update_signature_link(link_id, {
            "status": SignatureLinkStatus.REVOCADO,
            "expires_at": self.clock(),
        })

    async def resend_link(self, link_id: str, actor: Actor) -> SignatureLink:
        """Revoke a link and issue a fresh one for the same recipient.

        The recipient's signed copies (final, not template-generated) are
        deleted and their signable documents go back to 'pendiente'.
        """
        if actor.role not in RESEND_ROLES:
            raise AuthorizationError(f'El rol "{actor.role.value}" no puede reenviar enlaces de firma')
        old = await self.revoke_link(link_id)

        docs = await self.documents_for_link(old)
        copies = [d.id for d in docs if d.is_final and not d.generated_from_template]
        signed = [d.id for d in docs if d.requires_signature and d.status == DocumentStatus.FIRMADO]
        await self.db.delete_documents(copies)
        await self.db.update_documents(signed, {"status": DocumentStatus.PENDIENTE, "signed_at": None})

        link = await self.db.insert_signature_link(SignatureLink(
            sale_id=old.sale_id,
            recipient_type=old.recipient_type,
            recipient_email=old.recipient_email,
            recipient_phone=old.recipient_phone,
            recipient_id=old.recipient_id,
            expires_at=self._expiry(),
        ))
        await self.trace.record(
            old.sale_id,
            trace_events.SIGNATURE_LINK_RESENT,
            performed_by=actor.user_id,
            details={"revoked_link_id": old.id, "new_link_id": link.id, "deleted_copies": copies},
        )
        return link
