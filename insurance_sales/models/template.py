"""Document template models"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from insurance_sales.models.document import DocumentType
from insurance_sales.models.sale import new_id
from insurance_sales.utils.formatting import fold_text

# Legacy naming convention, matched on accent-folded lowercase names
DECLARATION_NAME_MARKERS = ("declaracion jurada", "ddjj", "salud")
CONTRACT_NAME_MARKERS = ("contrato",)


def classify_template_name(name: str) -> DocumentType:
    """Infer the document type from a template name (legacy templates only)"""
    folded = fold_text(name or "")
    if any(marker in folded for marker in DECLARATION_NAME_MARKERS):
        return DocumentType.DDJJ_SALUD
    if any(marker in folded for marker in CONTRACT_NAME_MARKERS):
        return DocumentType.CONTRATO
    return DocumentType.ANEXO


class TemplateAttachment(BaseModel):
    """A file uploaded to a template, used when it has no body"""
    id: str = Field(default_factory=new_id)
    template_id: str
    file_name: str
    file_path: str            # path inside the storage bucket
    file_type: str = "application/pdf"
    created_at: Optional[datetime] = None


class Template(BaseModel):
    """Reusable document skeleton with {{placeholders}}"""
    id: str = Field(default_factory=new_id)
    name: str
    content: Optional[str] = None
    kind: Optional[DocumentType] = None
    company_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    def classify(self) -> DocumentType:
        """Explicit kind wins; the name convention is only a fallback"""
        if self.kind is not None:
            return self.kind
        return classify_template_name(self.name)


class SaleTemplate(BaseModel):
    """Template selected for a sale's document set"""
    id: str = Field(default_factory=new_id)
    sale_id: str
    template_id: str
    created_at: Optional[datetime] = None
