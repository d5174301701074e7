"""Service wiring shared by the API and the CLI"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from insurance_sales.db.base import DatabaseInterface, FileStoreInterface, NotificationSink
from insurance_sales.db.supabase import get_database, get_file_store, get_notification_sink
from insurance_sales.services.documents import DocumentGenerationService
from insurance_sales.services.notifications import NotificationService
from insurance_sales.services.policy import TransitionPolicyChecker
from insurance_sales.services.sales import SaleService
from insurance_sales.services.signatures import SignatureLinkService
from insurance_sales.services.storage import DocumentStorageService
from insurance_sales.services.trace import ProcessTraceService
from insurance_sales.services.workflow import SaleWorkflowService
from insurance_sales.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleServices:
    """All lifecycle services built over one set of backends."""

    def __init__(
        self,
        db: DatabaseInterface,
        files: FileStoreInterface,
        sink: NotificationSink,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.files = files
        self.sink = sink
        self.notifications = NotificationService(sink)
        self.trace = ProcessTraceService(db)
        self.workflow = SaleWorkflowService(db, self.notifications, clock=clock)
        self.policy = TransitionPolicyChecker(db)
        self.sales = SaleService(db, self.workflow)
        self.signatures = SignatureLinkService(
            db, self.workflow, self.trace, settings=self.settings, clock=clock
        )
        self.documents = DocumentGenerationService(
            db,
            self.workflow,
            self.policy,
            self.signatures,
            self.trace,
            settings=self.settings,
            clock=clock,
        )
        self.storage = DocumentStorageService(db, files, settings=self.settings)


def build_services(mode: Optional[str] = None) -> LifecycleServices:
    """Build services for the backend selected by DB_MODE (or `mode`)."""
    settings = get_settings()
    mode = mode or settings.db_mode
    logger.info(f"Building lifecycle services (db_mode={mode})")
    return LifecycleServices(
        get_database(mode),
        get_file_store(mode),
        get_notification_sink(mode),
        settings=settings,
    )
