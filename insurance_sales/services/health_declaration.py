"""Health declaration codec.

A beneficiary row only carries one free-text column
(`preexisting_conditions_detail`), so the structured questionnaire is stored
as clauses joined with "; ":

    <question>: <detail>; Hábitos: Fuma, Vapea; Peso: 70; Estatura: 1.72;
    Última menstruación/embarazo: 03/2024

Only affirmative answers are written. Decoding is tolerant: unknown clauses
are dropped, missing clauses leave defaults, and it never raises.
"""

import logging
import re
from typing import Dict, List, Optional

from insurance_sales.models.health import HealthAnswer, HealthDeclaration, HealthHabits
from insurance_sales.utils.formatting import fold_text, yes_no

logger = logging.getLogger(__name__)

# Order matters: index i maps to placeholder ddjj_pregunta_{i+1}.
# Question texts must not contain ": " or ";".
QUESTIONS: List[str] = [
    "¿Padece alguna enfermedad crónica (diabetes, hipertensión, asma u otra)?",
    "¿Padece o ha padecido algún trastorno mental o neurológico?",
    "¿Padece o ha padecido alguna enfermedad cardiovascular?",
    "¿Ha tenido quistes, tumores o alguna enfermedad oncológica?",
    "¿Ha sido hospitalizado o intervenido quirúrgicamente?",
    "¿Toma medicamentos o realiza algún tratamiento actualmente?",
    "¿Padece alguna otra enfermedad no mencionada?",
]

DEFAULT_DETAIL = "Sí"
CLAUSE_SEPARATOR = "; "

HABITS_PREFIX = "Hábitos: "
WEIGHT_PREFIX = "Peso: "
HEIGHT_PREFIX = "Estatura: "
MENSTRUATION_PREFIX = "Última menstruación/embarazo: "

HABIT_LABELS = {
    "smokes": "Fuma",
    "vapes": "Vapea",
    "drinks_alcohol": "Consume alcohol",
}

_FOLDED_QUESTIONS = [fold_text(q) for q in QUESTIONS]


def _clean(value: Optional[str]) -> str:
    """Strip and neutralize separators so a value cannot split a clause"""
    if not value:
        return ""
    return re.sub(r"\s*;\s*", ", ", value).strip()


def encode(declaration: HealthDeclaration) -> str:
    """Serialize a declaration into the single stored text field."""
    clauses = []
    for index, question in enumerate(QUESTIONS):
        answer = declaration.answers[index] if index < len(declaration.answers) else None
        if answer is not None and answer.affirmative:
            clauses.append(f"{question}: {_clean(answer.detail) or DEFAULT_DETAIL}")

    habits = [label for field, label in HABIT_LABELS.items() if getattr(declaration.habits, field)]
    if habits:
        clauses.append(HABITS_PREFIX + ", ".join(habits))

    if _clean(declaration.weight):
        clauses.append(WEIGHT_PREFIX + _clean(declaration.weight))
    if _clean(declaration.height):
        clauses.append(HEIGHT_PREFIX + _clean(declaration.height))
    if _clean(declaration.last_menstruation):
        clauses.append(MENSTRUATION_PREFIX + _clean(declaration.last_menstruation))

    return CLAUSE_SEPARATOR.join(clauses)


def decode(text: Optional[str]) -> HealthDeclaration:
    """Parse the stored text back into a declaration.

    With no text every question stays unanswered (None). Once any text exists,
    questions without a clause are read as "no".
    """
    answers: List[Optional[HealthAnswer]] = [None] * len(QUESTIONS)
    declaration = HealthDeclaration(answers=answers)
    if not text or not text.strip():
        return declaration

    for segment in re.split(r";\s*", text):
        segment = segment.strip()
        if not segment:
            continue
        try:
            _apply_segment(declaration, segment)
        except (ValueError, IndexError) as e:
            logger.debug(f"Dropping unparseable health clause {segment!r}: {e}")

    declaration.answers = [
        a if a is not None else HealthAnswer(affirmative=False) for a in declaration.answers
    ]
    return declaration


def _value_after_prefix(segment: str) -> str:
    return segment.split(":", 1)[1].strip() if ":" in segment else ""


def _apply_segment(declaration: HealthDeclaration, segment: str) -> None:
    folded = fold_text(segment)

    for index, question in enumerate(_FOLDED_QUESTIONS):
        if folded.startswith(question):
            # question texts hold no ": ", so the first one ends the question
            detail = segment.split(": ", 1)[1].strip() if ": " in segment else ""
            declaration.answers[index] = HealthAnswer(affirmative=True, detail=detail)
            return

    if folded.startswith(fold_text(HABITS_PREFIX)):
        habits = HealthHabits()
        for item in _value_after_prefix(segment).split(","):
            item = fold_text(item)
            if not item:
                continue
            if "vape" in item:
                habits.vapes = True
            elif "fuma" in item:
                habits.smokes = True
            elif "alcohol" in item:
                habits.drinks_alcohol = True
        declaration.habits = habits
    elif folded.startswith(fold_text(WEIGHT_PREFIX)):
        declaration.weight = _value_after_prefix(segment) or None
    elif folded.startswith(fold_text(HEIGHT_PREFIX)):
        declaration.height = _value_after_prefix(segment) or None
    elif folded.startswith(fold_text(MENSTRUATION_PREFIX)):
        declaration.last_menstruation = _value_after_prefix(segment) or None
    else:
        logger.debug(f"Ignoring unknown health clause: {segment!r}")


def to_placeholders(declaration: HealthDeclaration) -> Dict[str, str]:
    """Flatten a declaration into the ddjj_* response keys templates use."""
    declared = any(a is not None for a in declaration.answers)
    values: Dict[str, str] = {}
    for index in range(len(QUESTIONS)):
        answer = declaration.answers[index] if index < len(declaration.answers) else None
        key = f"ddjj_pregunta_{index + 1}"
        values[key] = yes_no(answer.affirmative) if answer is not None else ""
        values[f"{key}_detalle"] = answer.detail if answer is not None and answer.affirmative else ""

    habits = declaration.habits
    values["ddjj_fuma"] = yes_no(habits.smokes) if declared else ""
    values["ddjj_vapea"] = yes_no(habits.vapes) if declared else ""
    values["ddjj_alcohol"] = yes_no(habits.drinks_alcohol) if declared else ""
    values["ddjj_habitos"] = ", ".join(
        label for field, label in HABIT_LABELS.items() if getattr(habits, field)
    )
    values["ddjj_peso"] = declaration.weight or ""
    values["ddjj_altura"] = declaration.height or ""
    values["ddjj_menstruacion"] = declaration.last_menstruation or ""
    values["ddjj_preexistencias"] = yes_no(declaration.has_preexisting_conditions) if declared else ""
    return values


def placeholders_from_text(text: Optional[str]) -> Dict[str, str]:
    """decode() + to_placeholders() for a stored field"""
    return to_placeholders(decode(text))
