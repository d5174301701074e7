"""Signature link API routes"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from insurance_sales.api.schemas import DocumentItem, LinkItem, SignatureCompleteRequest
from insurance_sales.api.state import get_actor, get_services
from insurance_sales.models import Actor
from insurance_sales.services.container import LifecycleServices

router = APIRouter(prefix="/api")


class SignatureView(BaseModel):
    link: LinkItem
    documents: list[DocumentItem] = []
    sale_status: Optional[str] = None


async def _view(services: LifecycleServices, link) -> SignatureView:
    documents = await services.signatures.documents_for_link(link)
    sale = await services.workflow.get_sale(link.sale_id)
    return SignatureView(
        link=LinkItem.from_link(link, services.signatures.link_url(link)),
        documents=[DocumentItem.from_document(d) for d in documents],
        sale_status=sale.status.value,
    )


@router.get("/signatures/{token}", response_model=SignatureView)
async def open_signature_link(
    token: str,
    services: LifecycleServices = Depends(get_services),
):
    """Signer opens the link; the token is the credential"""
    link = await services.signatures.open_link(token)
    return await _view(services, link)


@router.post("/signatures/{token}/complete", response_model=SignatureView)
async def complete_signature(
    token: str,
    req: SignatureCompleteRequest = SignatureCompleteRequest(),
    services: LifecycleServices = Depends(get_services),
):
    link = await services.signatures.complete_signature(token, signed_ip=req.signed_ip)
    return await _view(services, link)


@router.post("/signature-links/{link_id}/resend", response_model=LinkItem)
async def resend_signature_link(
    link_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    """Revoke a link and issue a fresh one for the same recipient"""
    link = await services.signatures.resend_link(link_id, actor)
    return LinkItem.from_link(link, services.signatures.link_url(link))
