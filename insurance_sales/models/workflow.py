"""Workflow history, per-company transition policy and generation lease models"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from insurance_sales.models.sale import SaleStatus, UserRole, new_id


class WorkflowTransition(BaseModel):
    """Append-only history entry for a status change"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    previous_status: Optional[SaleStatus] = None
    new_status: SaleStatus
    changed_by: str
    change_reason: str
    metadata: dict = {}
    created_at: Optional[datetime] = None


class TransitionRule(BaseModel):
    """One allowed edge in a company's workflow configuration"""
    from_status: SaleStatus
    to_status: SaleStatus
    allowed_roles: List[UserRole] = []
    conditions: List[str] = []
    require_note: bool = False


class WorkflowConfig(BaseModel):
    """Company-specific transition policy"""
    id: str = Field(default_factory=new_id)
    company_id: str
    is_active: bool = True
    transitions: List[TransitionRule] = []

    def find_rule(self, from_status: SaleStatus, to_status: SaleStatus) -> Optional[TransitionRule]:
        for rule in self.transitions:
            if rule.from_status == from_status and rule.to_status == to_status:
                return rule
        return None


class PolicyDecision(BaseModel):
    """Result of a policy check"""
    allowed: bool
    reasons: List[str] = []


class GenerationLease(BaseModel):
    """Marks a sale whose document set is being (re)generated"""
    sale_id: str
    holder: str
    expires_at: datetime
    created_at: Optional[datetime] = None
