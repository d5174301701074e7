"""Sale workflow and document API routes"""

from fastapi import APIRouter, Depends

from insurance_sales.api.schemas import (
    CancelRequest,
    DocumentItem,
    DocumentsResponse,
    DownloadResponse,
    GenerationResponse,
    HistoryResponse,
    InformationRequestResponse,
    LinkItem,
    NotesRequest,
    RespondRequest,
    SaleResponse,
    SubmitRequest,
    TransitionItem,
)
from insurance_sales.api.state import get_actor, get_services
from insurance_sales.models import Actor
from insurance_sales.services.container import LifecycleServices
from insurance_sales.services.documents import GenerationResult

router = APIRouter(prefix="/api")


def generation_response(services: LifecycleServices, result: GenerationResult) -> GenerationResponse:
    return GenerationResponse(
        sale_id=result.sale_id,
        status=result.status.value if result.status else None,
        documents=[DocumentItem.from_document(d) for d in result.documents],
        signature_links=[
            LinkItem.from_link(l, services.signatures.link_url(l)) for l in result.signature_links
        ],
        deleted=len(result.deleted_document_ids),
        preserved=len(result.preserved_document_ids),
        unresolved=result.unresolved,
        warnings=result.warnings,
    )


# ============================================================
# Workflow transitions
# ============================================================

@router.post("/sales/{sale_id}/submit", response_model=SaleResponse)
async def submit_sale(
    sale_id: str,
    req: SubmitRequest = SubmitRequest(),
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    """Send a draft (or rejected) sale to audit"""
    sale = await services.workflow.submit(sale_id, actor, note=req.note)
    return SaleResponse.from_sale(sale)


@router.post("/sales/{sale_id}/start-review", response_model=SaleResponse)
async def start_review(
    sale_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    sale = await services.workflow.start_review(sale_id, actor)
    return SaleResponse.from_sale(sale)


@router.post("/sales/{sale_id}/approve", response_model=SaleResponse)
async def approve_sale(
    sale_id: str,
    req: NotesRequest = NotesRequest(),
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    sale = await services.workflow.approve(sale_id, actor, notes=req.notes)
    return SaleResponse.from_sale(sale)


@router.post("/sales/{sale_id}/reject", response_model=SaleResponse)
async def reject_sale(
    sale_id: str,
    req: NotesRequest,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    sale = await services.workflow.reject(sale_id, actor, notes=req.notes or "")
    return SaleResponse.from_sale(sale)


@router.post("/sales/{sale_id}/request-info", response_model=SaleResponse)
async def request_info(
    sale_id: str,
    req: NotesRequest,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    """Return the sale to the salesperson asking for more information"""
    sale = await services.workflow.request_info(sale_id, actor, notes=req.notes or "")
    return SaleResponse.from_sale(sale)


@router.post("/sales/{sale_id}/cancel", response_model=SaleResponse)
async def cancel_sale(
    sale_id: str,
    req: CancelRequest = CancelRequest(),
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    sale = await services.workflow.cancel(sale_id, actor, reason=req.reason)
    return SaleResponse.from_sale(sale)


@router.post("/sales/{sale_id}/complete", response_model=SaleResponse)
async def complete_sale(
    sale_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    sale = await services.workflow.complete(sale_id, actor)
    return SaleResponse.from_sale(sale)


@router.post("/information-requests/{request_id}/respond", response_model=InformationRequestResponse)
async def respond_information_request(
    request_id: str,
    req: RespondRequest,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    request = await services.workflow.respond_information_request(request_id, actor, req.response)
    return InformationRequestResponse.from_request(request)


@router.get("/sales/{sale_id}/history", response_model=HistoryResponse)
async def sale_history(
    sale_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    """Workflow history, oldest first"""
    transitions = await services.workflow.history(sale_id)
    return HistoryResponse(
        sale_id=sale_id,
        transitions=[TransitionItem.from_transition(t) for t in transitions],
    )


# ============================================================
# Documents
# ============================================================

@router.post("/sales/{sale_id}/documents/generate", response_model=GenerationResponse)
async def generate_documents(
    sale_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    result = await services.documents.generate(sale_id, actor)
    return generation_response(services, result)


@router.post("/sales/{sale_id}/documents/regenerate", response_model=GenerationResponse)
async def regenerate_documents(
    sale_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    result = await services.documents.regenerate(sale_id, actor)
    return generation_response(services, result)


@router.get("/sales/{sale_id}/documents", response_model=DocumentsResponse)
async def list_documents(
    sale_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    await services.workflow.get_sale(sale_id)
    documents = await services.db.list_documents(sale_id)
    return DocumentsResponse(
        sale_id=sale_id,
        documents=[DocumentItem.from_document(d) for d in documents],
    )


@router.get("/documents/{document_id}/download", response_model=DownloadResponse)
async def download_document(
    document_id: str,
    actor: Actor = Depends(get_actor),
    services: LifecycleServices = Depends(get_services),
):
    """Short-lived signed URL for a stored document file"""
    url = await services.storage.download_url(document_id)
    return DownloadResponse(document_id=document_id, url=url)
