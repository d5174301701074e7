"""Tests for placeholder resolution and template rendering"""

from datetime import date

import pytest

from insurance_sales.models import Beneficiary, Client, Plan, Sale, SaleType
from insurance_sales.services.placeholders import PlaceholderResolver, normalize_placeholder
from insurance_sales.services.template_engine import TemplateEngine

REFERENCE = date(2024, 3, 15)


@pytest.fixture
def sale() -> Sale:
    return Sale(
        contract_number="C-0042",
        total_amount=1500000,
        salesperson_name="Carla Vendedora",
        sale_date=date(2024, 3, 5),
        billing_razon_social="Pérez SRL",
        billing_ruc="80012345-6",
        sale_type=SaleType.REINGRESO,
    )


@pytest.fixture
def client() -> Client:
    return Client(first_name="Juan", last_name="Pérez", dni="1234567", birth_date=date(1980, 6, 20))


@pytest.fixture
def beneficiaries(sale):
    return [
        Beneficiary(sale_id=sale.id, first_name="Juan", last_name="Pérez", is_primary=True,
                    document_number="1234567", amount=1000000),
        Beneficiary(sale_id=sale.id, first_name="Ana", last_name="Gómez", relationship="Hija",
                    document_number="7654321", birth_date=date(2010, 1, 10), amount=500000),
    ]


@pytest.fixture
def resolver(sale, client, beneficiaries) -> PlaceholderResolver:
    return PlaceholderResolver(
        sale=sale,
        client=client,
        plan=Plan(name="Plan Familiar", price=350000),
        beneficiaries=beneficiaries,
        responses={"ddjj_peso": "80", "observaciones": "Sin observaciones"},
        reference_date=REFERENCE,
    )


def render(template: str, resolver: PlaceholderResolver) -> str:
    return TemplateEngine().render(template, resolver).content


class TestNormalizePlaceholder:

    def test_namespace_aliases(self):
        assert normalize_placeholder("{{client.first_name}}") == ("cliente", "firstname")
        assert normalize_placeholder("cliente.fechaNacimiento") == ("cliente", "fechanacimiento")
        assert normalize_placeholder("{{ adherente.nombre }}") == ("beneficiario", "nombre")

    def test_bare_and_unknown_prefix(self):
        assert normalize_placeholder("titular_nombre") == (None, "titularnombre")
        assert normalize_placeholder("otro.campo") == (None, "otro.campo")


class TestResolver:

    def test_client_first_name_alone(self, sale):
        resolver = PlaceholderResolver(
            sale=sale, client=Client(first_name="Ana"), reference_date=REFERENCE,
        )
        assert render("{{client.first_name}}", resolver) == "Ana"

    def test_key_spelling_is_irrelevant(self, resolver):
        assert resolver.resolve("cliente.fecha_nacimiento") == "20/06/1980"
        assert resolver.resolve("cliente.fechaNacimiento") == "20/06/1980"
        assert resolver.resolve("CLIENTE.FECHANACIMIENTO") == "20/06/1980"

    def test_sale_values(self, resolver):
        assert resolver.resolve("venta.total_formateado") == "Gs. 1.500.000"
        assert resolver.resolve("venta.total_letras") == "UN MILLÓN QUINIENTOS MIL GUARANÍES"
        assert resolver.resolve("venta.fecha") == "05/03/2024"
        assert resolver.resolve("venta.tipo_venta") == "Reingreso"
        assert resolver.resolve("plan.precio_formateado") == "Gs. 350.000"

    def test_current_date_is_first_of_month(self, resolver):
        assert resolver.resolve("fecha.actual") == "01/03/2024"
        assert resolver.resolve("fecha_actual") == "1 de marzo de 2024"

    def test_legacy_aliases(self, resolver):
        assert resolver.resolve("titular_nombre") == "Juan Pérez"
        assert resolver.resolve("titular_ci") == "1234567"
        assert resolver.resolve("monto_total") == "Gs. 1.500.000 (UN MILLÓN QUINIENTOS MIL GUARANÍES)"
        assert resolver.resolve("razon_social") == "Pérez SRL"
        assert resolver.resolve("vendedor_nombre") == "Carla Vendedora"

    def test_responses(self, resolver):
        assert resolver.resolve("respuestas.ddjj_peso") == "80"
        assert resolver.resolve("observaciones") == "Sin observaciones"

    def test_client_age_at_reference_date(self, resolver):
        assert resolver.resolve("cliente.edad") == "43"

    def test_unknown_placeholder(self, resolver):
        assert resolver.resolve("cliente.apodo") is None
        assert resolver.resolve("no_existe") is None

    def test_for_beneficiary_scopes_person_fields(self, resolver, beneficiaries):
        ana = beneficiaries[1]
        scoped = resolver.for_beneficiary(ana, {"ddjj_peso": "55"})
        assert scoped.resolve("cliente.nombre_completo") == "Ana Gómez"
        assert scoped.resolve("titular.nombre") == "Ana"
        assert scoped.resolve("ddjj_peso") == "55"
        assert scoped.item_count == 1
        # the sale-wide resolver is untouched
        assert resolver.resolve("cliente.nombre_completo") == "Juan Pérez"
        assert resolver.resolve("ddjj_peso") == "80"


class TestTemplateEngine:

    def test_loop_block_repeats_per_beneficiary(self, resolver):
        template = (
            "<ul>{{#beneficiarios}}<li>{{indice}}. {{beneficiario.nombre_completo}} "
            "({{beneficiario.parentesco}})</li>{{/beneficiarios}}</ul>"
        )
        assert render(template, resolver) == (
            "<ul><li>1. Juan Pérez (Titular)</li><li>2. Ana Gómez (Hija)</li></ul>"
        )

    def test_table_rows_are_replicated(self, resolver):
        template = (
            "<table><tr><th>Nombre</th></tr>"
            "<tr><td>{{beneficiario.nombre}}</td><td>{{beneficiario.monto_formateado}}</td></tr>"
            "</table>"
        )
        assert render(template, resolver) == (
            "<table><tr><th>Nombre</th></tr>"
            "<tr><td>Juan</td><td>Gs. 1.000.000</td></tr>"
            "<tr><td>Ana</td><td>Gs. 500.000</td></tr>"
            "</table>"
        )

    def test_rows_are_not_replicated_when_a_loop_exists(self, resolver):
        template = (
            "{{#adherentes}}{{beneficiario.nombre}};{{/adherentes}}"
            "<tr><td>{{beneficiario.nombre}}</td></tr>"
        )
        assert render(template, resolver) == "Juan;Ana;<tr><td>Juan</td></tr>"

    def test_unresolved_markers_stay_visible(self, resolver):
        result = TemplateEngine().render("Hola {{cliente.nombre}} {{cliente.apodo}}", resolver)
        assert result.content == "Hola Juan {{cliente.apodo}}"
        assert result.unresolved == ["cliente.apodo"]

    def test_empty_template(self, resolver):
        result = TemplateEngine().render("", resolver)
        assert result.content == ""
        assert result.unresolved == []
