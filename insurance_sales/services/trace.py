"""Process trace service: diagnostic events attached to a sale"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from insurance_sales.db.base import DatabaseInterface
from insurance_sales.models import ProcessTrace

logger = logging.getLogger(__name__)

UNRESOLVED_PLACEHOLDERS = "placeholders_sin_resolver"
DOCUMENTS_GENERATED = "documentos_generados"
DOCUMENTS_REGENERATED = "documentos_regenerados"
GENERATION_FAILED = "generacion_fallida"
SIGNATURE_COMPLETED = "firma_completada"
SIGNATURE_LINK_RESENT = "enlace_reenviado"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ProcessTraceService:
    """Records and lists trace events for a sale."""

    def __init__(self, db: DatabaseInterface):
        self.db = db

    async def record(
        self,
        sale_id: str,
        action: str,
        performed_by: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Optional[ProcessTrace]:
        """Append a trace event. Returns None if it could not be stored."""
        try:
            trace = await self.db.insert_process_trace(ProcessTrace(
                sale_id=sale_id,
                action=action,
                performed_by=performed_by,
                details=details or {},
            ))
            logger.info(f"Trace {action} recorded for sale {sale_id}")
            return trace
        except Exception as e:
            logger.warning(f"Failed to record trace {action} for sale {sale_id}: {e}")
            return None

    async def record_unresolved(
        self,
        sale_id: str,
        document_name: str,
        placeholders: List[str],
        performed_by: Optional[str] = None,
        beneficiary_id: Optional[str] = None,
    ) -> Optional[ProcessTrace]:
        """Flag a document rendered with literal {{...}} markers left in it."""
        logger.warning(
            f"Sale {sale_id}: '{document_name}' has {len(placeholders)} unresolved placeholders: "
            f"{', '.join(placeholders)}"
        )
        return await self.record(
            sale_id,
            UNRESOLVED_PLACEHOLDERS,
            performed_by=performed_by,
            details={
                "document_name": document_name,
                "beneficiary_id": beneficiary_id,
                "placeholders": placeholders,
            },
        )

    async def list_for_sale(self, sale_id: str) -> List[ProcessTrace]:
        traces = await self.db.list_process_traces(sale_id)
        return sorted(traces, key=lambda t: t.created_at or EPOCH)
