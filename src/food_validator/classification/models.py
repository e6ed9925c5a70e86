from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

YesNo = Literal["yes", "no"]

COMPLIANCE_FLAGS = (
    "is_vegetarian",
    "is_swaminarayan_compliant",
    "is_jain_compliant",
    "is_vegan_compliant",
    "is_upvas_compliant",
)


class ClassificationResult(BaseModel):
    """Dietary compliance verdict for one food item."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    food_name: str
    ingredients: list[str] = Field(default_factory=list)
    is_vegetarian: YesNo
    is_swaminarayan_compliant: YesNo
    is_jain_compliant: YesNo
    is_vegan_compliant: YesNo
    is_upvas_compliant: YesNo
    reasons: list[str] = Field(default_factory=list)

    @field_validator(*COMPLIANCE_FLAGS, mode="before")
    @classmethod
    def _normalize_flag(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return "yes" if value else "no"
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("ingredients", "reasons", mode="before")
    @classmethod
    def _split_text_list(cls, value: Any) -> Any:
        # Models sometimes answer with a comma separated string.
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value
