"""Tests for the health declaration codec"""

from insurance_sales.models import HealthAnswer, HealthDeclaration, HealthHabits
from insurance_sales.services import health_declaration
from insurance_sales.services.health_declaration import QUESTIONS, decode, encode, to_placeholders


class TestEncode:

    def test_only_affirmative_answers_are_written(self):
        text = encode(HealthDeclaration(
            answers=[
                HealthAnswer(affirmative=True, detail="Diabetes tipo 2"),
                HealthAnswer(affirmative=False),
                None,
            ],
            habits=HealthHabits(smokes=True),
            weight="80",
        ))
        assert text == f"{QUESTIONS[0]}: Diabetes tipo 2; Hábitos: Fuma; Peso: 80"

    def test_affirmative_without_detail_uses_default(self):
        text = encode(HealthDeclaration(answers=[None, HealthAnswer(affirmative=True)]))
        assert text == f"{QUESTIONS[1]}: Sí"

    def test_separator_inside_detail_is_neutralized(self):
        text = encode(HealthDeclaration(
            answers=[HealthAnswer(affirmative=True, detail="Asma; alergia al polen")],
        ))
        assert text.count(";") == 0
        assert decode(text).answers[0].detail == "Asma, alergia al polen"

    def test_empty_declaration(self):
        assert encode(HealthDeclaration()) == ""


class TestDecode:

    def test_empty_text_leaves_questions_unanswered(self):
        declaration = decode("")
        assert declaration.answers == [None] * len(QUESTIONS)
        assert declaration.weight is None
        assert decode(None).answers == [None] * len(QUESTIONS)

    def test_any_text_marks_missing_questions_as_no(self):
        declaration = decode("Peso: 55")
        assert declaration.weight == "55"
        assert all(a is not None and not a.affirmative for a in declaration.answers)

    def test_full_declaration(self):
        original = HealthDeclaration(
            answers=[
                None,
                None,
                HealthAnswer(affirmative=True, detail="Arritmia controlada"),
            ],
            habits=HealthHabits(vapes=True, drinks_alcohol=True),
            weight="72",
            height="1.68",
            last_menstruation="02/2024",
        )
        decoded = decode(encode(original))
        assert decoded.answers[2].affirmative
        assert decoded.answers[2].detail == "Arritmia controlada"
        assert not decoded.answers[0].affirmative
        assert decoded.habits == HealthHabits(vapes=True, drinks_alcohol=True)
        assert decoded.height == "1.68"
        assert decoded.last_menstruation == "02/2024"
        assert decoded.has_preexisting_conditions

    def test_prefixes_are_accent_and_case_insensitive(self):
        declaration = decode("habitos: fuma, consume alcohol;ESTATURA: 1.80")
        assert declaration.habits.smokes
        assert declaration.habits.drinks_alcohol
        assert not declaration.habits.vapes
        assert declaration.height == "1.80"

    def test_unknown_clauses_are_dropped(self):
        declaration = decode("texto libre sin formato; Peso: 90; ;;")
        assert declaration.weight == "90"
        assert not declaration.has_preexisting_conditions


class TestPlaceholders:

    def test_titular_declaration(self):
        values = health_declaration.placeholders_from_text(
            f"{QUESTIONS[0]}: Diabetes tipo 2; Hábitos: Fuma; Peso: 80"
        )
        assert values["ddjj_pregunta_1"] == "Sí"
        assert values["ddjj_pregunta_1_detalle"] == "Diabetes tipo 2"
        assert values["ddjj_pregunta_2"] == "No"
        assert values["ddjj_pregunta_2_detalle"] == ""
        assert values["ddjj_fuma"] == "Sí"
        assert values["ddjj_vapea"] == "No"
        assert values["ddjj_habitos"] == "Fuma"
        assert values["ddjj_peso"] == "80"
        assert values["ddjj_altura"] == ""
        assert values["ddjj_preexistencias"] == "Sí"

    def test_undeclared_values_are_blank(self):
        values = to_placeholders(decode(None))
        assert values["ddjj_pregunta_1"] == ""
        assert values["ddjj_fuma"] == ""
        assert values["ddjj_preexistencias"] == ""
        assert len([k for k in values if k.startswith("ddjj_pregunta_") and not k.endswith("_detalle")]) == len(QUESTIONS)
