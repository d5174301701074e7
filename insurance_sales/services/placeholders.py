"""Placeholder resolution.

Maps a placeholder such as `{{cliente.nombreCompleto}}`, `titular_nombre` or
`{{respuestas.ddjj_peso}}` to a display value built from typed sale records.
Lookup is case-insensitive and ignores `_`/`-`, so `fecha_nacimiento`,
`fechaNacimiento` and `FECHANACIMIENTO` are the same key.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from insurance_sales.models import Beneficiary, Client, Company, Plan, Sale, SaleType, SignatureLink
from insurance_sales.utils.formatting import (
    amount_in_words,
    calculate_age,
    first_day_of_month,
    format_currency,
    format_date,
    format_long_date,
    yes_no,
    SPANISH_MONTHS,
)

logger = logging.getLogger(__name__)

# Accepted namespace tokens -> canonical namespace
NAMESPACE_ALIASES = {
    "cliente": "cliente",
    "client": "cliente",
    "plan": "plan",
    "empresa": "empresa",
    "company": "empresa",
    "venta": "venta",
    "sale": "venta",
    "facturacion": "facturacion",
    "billing": "facturacion",
    "firma": "firma",
    "signature": "firma",
    "fecha": "fecha",
    "date": "fecha",
    "titular": "titular",
    "beneficiarioprincipal": "titular",
    "beneficiario": "beneficiario",
    "beneficiary": "beneficiario",
    "adherente": "beneficiario",
    "respuestas": "respuestas",
    "responses": "respuestas",
}

# Bare keys fall through these namespaces in order
BARE_KEY_ORDER = ("cliente", "venta", "plan", "empresa", "facturacion", "firma", "fecha", "titular")


def normalize_key(key: str) -> str:
    return key.strip().lower().replace("_", "").replace("-", "").replace(" ", "")


def normalize_placeholder(raw: str) -> Tuple[Optional[str], str]:
    """Reduce `{{ns.key}}`, `ns.key`, `{{key}}` or `key` to (namespace, key).

    The namespace is canonical (see NAMESPACE_ALIASES) or None for bare keys
    and unknown prefixes.
    """
    text = raw.strip()
    if text.startswith("{{") and text.endswith("}}"):
        text = text[2:-2].strip()
    if "." in text:
        prefix, key = text.split(".", 1)
        namespace = NAMESPACE_ALIASES.get(normalize_key(prefix))
        if namespace is not None:
            return namespace, normalize_key(key)
    return None, normalize_key(text)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return yes_no(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _with_aliases(values: Dict[str, Any], aliases: Mapping[str, Tuple[str, ...]]) -> Dict[str, str]:
    """Normalize keys and register each alias group under every spelling"""
    result = {normalize_key(k): _text(v) for k, v in values.items()}
    for canonical, spellings in aliases.items():
        value = result.get(normalize_key(canonical), "")
        for spelling in spellings:
            result.setdefault(normalize_key(spelling), value)
    return result


PERSON_ALIASES = {
    "nombre": ("first_name",),
    "apellido": ("last_name",),
    "nombre_completo": ("full_name", "name"),
    "dni": ("ci", "document_number", "cedula"),
    "telefono": ("phone",),
    "direccion": ("address",),
    "ciudad": ("city",),
    "provincia": ("departamento", "province"),
    "codigo_postal": ("postal_code",),
    "fecha_nacimiento": ("birth_date",),
    "edad": ("age",),
    "genero": ("gender",),
    "parentesco": ("relationship",),
    "monto": ("amount",),
}


class PlaceholderResolver:
    """Resolves placeholders against one sale's records.

    `declarant` scopes person fields (cliente/titular/beneficiario) to a single
    beneficiary, which is how per-beneficiary declarations are rendered.
    """

    def __init__(
        self,
        *,
        sale: Sale,
        client: Optional[Client] = None,
        plan: Optional[Plan] = None,
        company: Optional[Company] = None,
        beneficiaries: Optional[List[Beneficiary]] = None,
        responses: Optional[Mapping[str, Any]] = None,
        reference_date: date,
        signature_link: Optional[SignatureLink] = None,
        signature_base_url: str = "",
        currency_symbol: str = "Gs.",
        declarant: Optional[Beneficiary] = None,
    ):
        self.sale = sale
        self.client = client
        self.plan = plan
        self.company = company
        self.beneficiaries = list(beneficiaries or [])
        self.responses = dict(responses or {})
        self.reference_date = reference_date
        self.signature_link = signature_link
        self.signature_base_url = signature_base_url.rstrip("/")
        self.currency_symbol = currency_symbol
        self.declarant = declarant

        self._namespaces = self._build_namespaces()
        self._responses = {normalize_key(k): _text(v) for k, v in self.responses.items()}
        self._aliases = self._build_aliases()
        self._items = [self._beneficiary_values(b) for b in self.beneficiaries]
        self._item: Optional[Dict[str, str]] = None

    # ---- Public API ----

    @property
    def item_count(self) -> int:
        return len(self._items)

    def for_beneficiary(
        self, beneficiary: Beneficiary, responses: Optional[Mapping[str, Any]] = None
    ) -> "PlaceholderResolver":
        """A resolver whose person fields and list describe only `beneficiary`"""
        return PlaceholderResolver(
            sale=self.sale,
            client=self.client,
            plan=self.plan,
            company=self.company,
            beneficiaries=[beneficiary],
            responses=self.responses if responses is None else responses,
            reference_date=self.reference_date,
            signature_link=self.signature_link,
            signature_base_url=self.signature_base_url,
            currency_symbol=self.currency_symbol,
            declarant=beneficiary,
        )

    def for_item(self, index: int) -> "PlaceholderResolver":
        """A shallow copy where beneficiary fields resolve to list item `index`"""
        scoped = object.__new__(PlaceholderResolver)
        scoped.__dict__.update(self.__dict__)
        item = dict(self._items[index])
        for key in ("indice", "index", "_index"):
            item[normalize_key(key)] = str(index + 1)
        scoped._item = item
        return scoped

    def resolve(self, placeholder: str) -> Optional[str]:
        """Display value for a placeholder, or None when nothing provides it."""
        namespace, key = normalize_placeholder(placeholder)
        if not key:
            return None

        if namespace == "respuestas":
            return self._responses.get(key)
        if namespace == "beneficiario":
            source = self._item if self._item is not None else self._namespaces["beneficiario"]
            return source.get(key)
        if namespace is not None:
            return self._namespaces[namespace].get(key)

        if self._item is not None and key in self._item:
            return self._item[key]
        if key in self._aliases:
            return self._aliases[key]
        if key in self._responses:
            return self._responses[key]
        for name in BARE_KEY_ORDER:
            if key in self._namespaces[name]:
                return self._namespaces[name][key]
        return None

    # ---- Context construction ----

    def _person_values(self, person) -> Dict[str, Any]:
        if person is None:
            return {}
        birth = getattr(person, "birth_date", None)
        age = calculate_age(birth, self.reference_date)
        return {
            "nombre": person.first_name,
            "apellido": person.last_name,
            "nombre_completo": person.full_name,
            "dni": getattr(person, "dni", None) or getattr(person, "document_number", ""),
            "email": person.email,
            "telefono": person.phone,
            "direccion": person.address,
            "ciudad": getattr(person, "city", ""),
            "provincia": getattr(person, "province", ""),
            "barrio": getattr(person, "barrio", ""),
            "codigo_postal": getattr(person, "postal_code", ""),
            "fecha_nacimiento": format_date(birth),
            "edad": "" if age is None else age,
        }

    def _beneficiary_values(self, beneficiary: Optional[Beneficiary]) -> Dict[str, str]:
        if beneficiary is None:
            return {}
        values = self._person_values(beneficiary)
        values.update({
            "parentesco": beneficiary.relationship or "Titular",
            "genero": beneficiary.gender,
            "monto": beneficiary.amount,
            "monto_formateado": format_currency(beneficiary.amount, self.currency_symbol),
            "requiere_firma": beneficiary.requires_signature,
            "tiene_preexistencias": beneficiary.has_preexisting_conditions,
            "detalle_preexistencias": beneficiary.preexisting_conditions_detail or "",
        })
        return _with_aliases(values, PERSON_ALIASES)

    def _primary(self) -> Optional[Beneficiary]:
        for b in self.beneficiaries:
            if b.is_primary:
                return b
        return self.beneficiaries[0] if self.beneficiaries else None

    def _build_namespaces(self) -> Dict[str, Dict[str, str]]:
        sale = self.sale
        person = self.declarant or self.client
        primary = self.declarant or self._primary()
        sale_date = sale.sale_date or self.reference_date
        month_start = first_day_of_month(self.reference_date)
        link = self.signature_link

        cliente = _with_aliases(self._person_values(person), PERSON_ALIASES)

        plan = _with_aliases({
            "nombre": self.plan.name if self.plan else "",
            "precio": self.plan.price if self.plan else 0,
            "precio_formateado": format_currency(self.plan.price if self.plan else 0, self.currency_symbol),
            "descripcion": self.plan.description if self.plan else "",
            "cobertura": (self.plan.coverage_details or "") if self.plan else "",
        }, {"nombre": ("name",), "precio": ("price",), "descripcion": ("description",), "cobertura": ("coverage",)})

        company = self.company
        empresa = _with_aliases({
            "nombre": company.name if company else "",
            "email": company.email if company else "",
            "telefono": company.phone if company else "",
            "direccion": company.address if company else "",
            "logo": company.logo_url if company else "",
            "color_primario": company.primary_color if company else "",
            "color_secundario": company.secondary_color if company else "",
        }, {"nombre": ("name",), "telefono": ("phone",), "direccion": ("address",)})

        venta = _with_aliases({
            "id": sale.id,
            "fecha": format_date(sale_date),
            "fecha_formateada": format_long_date(sale_date),
            "total": sale.total_amount,
            "total_formateado": format_currency(sale.total_amount, self.currency_symbol),
            "total_letras": amount_in_words(sale.total_amount),
            "vendedor": sale.salesperson_name,
            "notas": sale.notes,
            "estado": sale.status.value,
            "numero_contrato": sale.contract_number,
            "numero_solicitud": sale.request_number,
            "cantidad_adherentes": len(self.beneficiaries),
            "fecha_inicio_contrato": format_date(sale.contract_start_date),
            "fecha_inicio_contrato_formateada": format_long_date(sale.contract_start_date),
            "vigencia_inmediata": yes_no(sale.immediate_coverage),
            "tipo_venta": "Reingreso" if sale.sale_type == SaleType.REINGRESO else "Venta Nueva",
        }, {"total": ("amount",), "numero_contrato": ("contract_number",)})

        facturacion = _with_aliases({
            "razon_social": sale.billing_razon_social,
            "ruc": sale.billing_ruc,
            "email": sale.billing_email,
            "telefono": sale.billing_phone,
        }, {"telefono": ("phone",)})

        firma = _with_aliases({
            "enlace": f"{self.signature_base_url}/{link.token}" if link else "",
            "token": link.token if link else "",
            "fecha_expiracion": format_long_date(link.expires_at) if link else "",
            "estado": link.status.value if link else "pendiente",
        }, {"enlace": ("link", "url")})

        fecha = _with_aliases({
            "actual": format_date(month_start),
            "actual_formateada": format_long_date(month_start),
            "anio": self.reference_date.year,
            "mes": SPANISH_MONTHS[self.reference_date.month - 1],
            "dia": self.reference_date.day,
        }, {"anio": ("year",), "mes": ("month",), "dia": ("day",)})

        titular = self._beneficiary_values(primary)
        return {
            "cliente": cliente,
            "plan": plan,
            "empresa": empresa,
            "venta": venta,
            "facturacion": facturacion,
            "firma": firma,
            "fecha": fecha,
            "titular": titular,
            "beneficiario": titular,
        }

    def _build_aliases(self) -> Dict[str, str]:
        """Flat legacy placeholder names still found in older templates"""
        c = self._namespaces["cliente"]
        v = self._namespaces["venta"]
        f = self._namespaces["facturacion"]
        aliases = {
            "titular_nombre": c.get("nombrecompleto", ""),
            "titular_email": c.get("email", ""),
            "titular_telefono": c.get("telefono", ""),
            "titular_ci": c.get("dni", ""),
            "titular_dni": c.get("dni", ""),
            "titular_direccion": c.get("direccion", ""),
            "titular_ciudad": c.get("ciudad", ""),
            "titular_provincia": c.get("provincia", ""),
            "titular_departamento": c.get("provincia", ""),
            "titular_barrio": c.get("barrio", ""),
            "titular_fecha_nacimiento": c.get("fechanacimiento", ""),
            "titular_edad": c.get("edad", ""),
            "monto_total": f"{v['totalformateado']} ({v['totalletras']})",
            "monto_total_letras": v["totalletras"],
            "razon_social": f.get("razonsocial", ""),
            "ruc": f.get("ruc", ""),
            "billing_email": f.get("email", ""),
            "billing_telefono": f.get("telefono", ""),
            "fecha_actual": self._namespaces["fecha"]["actualformateada"],
            "numero_contrato": v["numerocontrato"],
            "vendedor_nombre": v["vendedor"],
            "vigencia_inmediata": v["vigenciainmediata"],
            "tipo_venta": v["tipoventa"],
        }
        return {normalize_key(k): val for k, val in aliases.items()}
