from typing import Literal

from pydantic import BaseModel, Field, field_validator

CATEGORY_NAMES = (
    "Communication Skills",
    "Technical Knowledge",
    "Problem-Solving",
    "Cultural & Role Fit",
    "Confidence & Clarity",
)

CategoryName = Literal[
    "Communication Skills",
    "Technical Knowledge",
    "Problem-Solving",
    "Cultural & Role Fit",
    "Confidence & Clarity",
]


class CategoryScore(BaseModel):
    name: CategoryName
    score: int = Field(ge=0, le=100)
    comment: str


class FeedbackAssessment(BaseModel):
    """Shape the model must return; validated before anything is stored."""

    total_score: int = Field(ge=0, le=100)
    category_scores: list[CategoryScore]
    strengths: list[str]
    areas_for_improvement: list[str]
    final_assessment: str

    @field_validator("category_scores")
    @classmethod
    def _exact_categories(cls, value: list[CategoryScore]) -> list[CategoryScore]:
        names = [item.name for item in value]
        if sorted(names) != sorted(CATEGORY_NAMES):
            raise ValueError(f"category_scores must contain exactly {list(CATEGORY_NAMES)}, got {names}")
        order = {name: index for index, name in enumerate(CATEGORY_NAMES)}
        return sorted(value, key=lambda item: order[item.name])


class TranscriptMessage(BaseModel):
    role: Literal["user", "system", "assistant"]
    content: str
