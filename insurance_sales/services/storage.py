"""Template attachment upload and time-bounded document downloads"""

import logging
import re
from typing import Optional

from insurance_sales.db.base import DatabaseInterface, FileStoreInterface
from insurance_sales.models import TemplateAttachment
from insurance_sales.services.errors import SaleNotFoundError, SaleValidationError
from insurance_sales.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _safe_name(file_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", file_name).strip("_") or "archivo"


class DocumentStorageService:
    """Bridges documents and attachments to the file store."""

    def __init__(
        self,
        db: DatabaseInterface,
        files: FileStoreInterface,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.files = files
        self.settings = settings or get_settings()

    async def upload_attachment(
        self,
        template_id: str,
        file_name: str,
        data: bytes,
        content_type: str = "application/pdf",
    ) -> TemplateAttachment:
        """Upload a file and register it as an attachment of the template."""
        if not data:
            raise SaleValidationError("El archivo está vacío")
        path = f"templates/{template_id}/{_safe_name(file_name)}"
        stored_path = await self.files.upload(path, data, content_type)
        attachment = await self.db.insert_template_attachment(TemplateAttachment(
            template_id=template_id,
            file_name=file_name,
            file_path=stored_path,
            file_type=content_type,
        ))
        logger.info(f"Attachment {file_name} stored for template {template_id}")
        return attachment

    async def download_url(self, document_id: str) -> str:
        """Signed URL for a file-backed document."""
        document = await self.db.get_document(document_id)
        if document is None:
            raise SaleNotFoundError(f"Documento no encontrado: {document_id}")
        if not document.file_url:
            raise SaleValidationError("El documento no tiene archivo asociado")
        return await self.files.create_signed_url(
            document.file_url, self.settings.signed_url_ttl_seconds
        )
