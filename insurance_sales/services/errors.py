"""Error taxonomy for the sale lifecycle"""

from typing import Iterable, List, Optional


class SaleLifecycleError(Exception):
    """Base class for every error raised by the lifecycle services"""


class SaleNotFoundError(SaleLifecycleError):
    pass


class SaleValidationError(SaleLifecycleError):
    """Input or precondition problem; nothing was written"""


class TransitionNotAllowedError(SaleLifecycleError):
    """The action has no edge from the sale's current status"""

    def __init__(self, sale_id: str, current_status: str, action: str):
        self.sale_id = sale_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Sale {sale_id}: action '{action}' is not allowed from status '{current_status}'"
        )


class AuthorizationError(SaleLifecycleError):
    """Actor may not perform the action"""

    def __init__(self, message: str, allowed_states: Optional[Iterable[str]] = None):
        self.allowed_states: List[str] = sorted(allowed_states or [])
        if self.allowed_states:
            message = f"{message} (permitido desde: {', '.join(self.allowed_states)})"
        super().__init__(message)


class PolicyDeniedError(AuthorizationError):
    """Company transition policy rejected the move"""

    def __init__(self, sale_id: str, target_status: str, reasons: List[str], result=None):
        self.sale_id = sale_id
        self.target_status = target_status
        self.reasons = reasons
        self.result = result
        super().__init__(
            f"Sale {sale_id} cannot move to '{target_status}': " + "; ".join(reasons)
        )


class StorageError(SaleLifecycleError):
    """A data store or file store call failed"""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        detail = f": {cause}" if cause else ""
        super().__init__(f"Storage operation '{operation}' failed{detail}")


class GenerationInProgressError(SaleLifecycleError):
    def __init__(self, sale_id: str):
        self.sale_id = sale_id
        super().__init__(f"Document generation already running for sale {sale_id}")


class DocumentGenerationError(SaleLifecycleError):
    """A generation cycle stopped part way; `result` holds what was already written"""

    def __init__(self, message: str, result, cause: Optional[BaseException] = None):
        self.result = result
        self.cause = cause
        super().__init__(message)
