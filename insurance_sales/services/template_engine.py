"""Template interpolation engine.

Expands a template body against a PlaceholderResolver:

1. `{{#beneficiarios}}...{{/beneficiarios}}` blocks repeat once per
   beneficiary, with item fields and `{{indice}}` in scope.
2. Without loop blocks, `<tr>` rows that reference `beneficiario.*` are
   replicated once per beneficiary.
3. Remaining `{{...}}` placeholders are substituted. Unknown ones stay in the
   output verbatim and are reported back so callers can trace them.

Rendering is a pure function of (template, resolver).
"""

import logging
import re
from typing import List, Set

from pydantic import BaseModel

from insurance_sales.services.placeholders import PlaceholderResolver, normalize_placeholder

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}#/\s][^{}]*?)\s*\}\}")
LOOP_RE = re.compile(
    r"\{\{\s*#\s*(beneficiarios|beneficiaries|adherentes)\s*\}\}(.*?)\{\{\s*/\s*\1\s*\}\}",
    re.DOTALL | re.IGNORECASE,
)
ROW_RE = re.compile(r"<tr\b[^>]*>.*?</tr>", re.DOTALL | re.IGNORECASE)


class RenderResult(BaseModel):
    """Rendered content plus the placeholders nothing could fill"""
    content: str
    unresolved: List[str] = []


class TemplateEngine:
    """Stateless renderer; safe to share."""

    def render(self, template: str, resolver: PlaceholderResolver) -> RenderResult:
        unresolved: Set[str] = set()
        content = template or ""

        content, looped = self._expand_loops(content, resolver, unresolved)
        if not looped:
            content = self._replicate_rows(content, resolver, unresolved)
        content = self._substitute(content, resolver, unresolved)

        if unresolved:
            logger.debug(f"Unresolved placeholders: {sorted(unresolved)}")
        return RenderResult(content=content, unresolved=sorted(unresolved))

    def _substitute(self, text: str, resolver: PlaceholderResolver, unresolved: Set[str]) -> str:
        def replace(match: re.Match) -> str:
            name = match.group(1).strip()
            value = resolver.resolve(name)
            if value is None:
                unresolved.add(name)
                return match.group(0)
            return value

        return PLACEHOLDER_RE.sub(replace, text)

    def _render_items(self, body: str, resolver: PlaceholderResolver, unresolved: Set[str]) -> str:
        return "".join(
            self._substitute(body, resolver.for_item(index), unresolved)
            for index in range(resolver.item_count)
        )

    def _expand_loops(self, text: str, resolver: PlaceholderResolver, unresolved: Set[str]):
        found = False

        def replace(match: re.Match) -> str:
            nonlocal found
            found = True
            return self._render_items(match.group(2), resolver, unresolved)

        return LOOP_RE.sub(replace, text), found

    def _replicate_rows(self, text: str, resolver: PlaceholderResolver, unresolved: Set[str]) -> str:
        def references_beneficiary(row: str) -> bool:
            return any(
                normalize_placeholder(name)[0] == "beneficiario"
                for name in PLACEHOLDER_RE.findall(row)
            )

        def replace(match: re.Match) -> str:
            row = match.group(0)
            if not references_beneficiary(row):
                return row
            return self._render_items(row, resolver, unresolved)

        return ROW_RE.sub(replace, text)
