"""Structured health declaration (DDJJ de salud) models"""

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthAnswer(BaseModel):
    """Answer to one yes/no question"""
    affirmative: bool
    detail: str = ""


class HealthHabits(BaseModel):
    smokes: bool = False
    vapes: bool = False
    drinks_alcohol: bool = False


class HealthDeclaration(BaseModel):
    """Per-person questionnaire.

    answers[i] is None when question i was never answered.
    """
    answers: List[Optional[HealthAnswer]] = Field(default_factory=list)
    habits: HealthHabits = Field(default_factory=HealthHabits)
    weight: Optional[str] = None
    height: Optional[str] = None
    last_menstruation: Optional[str] = None

    @property
    def has_preexisting_conditions(self) -> bool:
        return any(a is not None and a.affirmative for a in self.answers)
