"""Insight and brand schemas."""

from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


class SimilarItem(BaseModel):
    """A comparable product or company surfaced by the insight model."""

    model_config = ConfigDict(frozen=True)

    name: str
    similarity: float = 0.0
    description: str = ""
    tags: List[str] = Field(default_factory=list)

    @field_validator("similarity", mode="before")
    @classmethod
    def _clamp_similarity(cls, value: Any) -> float:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 0.0
        if score != score:  # NaN
            return 0.0
        # Models sometimes answer in percent
        if score > 1.0 and score <= 100.0:
            score = score / 100.0
        return max(0.0, min(1.0, score))

    @field_validator("description", mode="before")
    @classmethod
    def _description_str(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, value: Any) -> List[str]:
        return _as_str_list(value)


class InsightPayload(BaseModel):
    """Structured insight content recovered from a model reply.

    Every field has an empty default so a partial reply still validates.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    summary: str = ""
    differentiation: List[str] = Field(default_factory=list)
    similar_items: List[SimilarItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("similarItems", "similar_items", "startups"),
    )
    research_notes: Optional[str] = None

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_str(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("differentiation", mode="before")
    @classmethod
    def _differentiation_list(cls, value: Any) -> List[str]:
        return _as_str_list(value)

    @field_validator("similar_items", mode="before")
    @classmethod
    def _drop_unnamed_items(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        kept: List[Any] = []
        for item in value:
            if isinstance(item, SimilarItem):
                kept.append(item)
            elif isinstance(item, dict) and str(item.get("name") or "").strip():
                kept.append(item)
        return kept


class InsightRecord(InsightPayload):
    """Immutable published insight, stamped with its epoch."""

    epoch: int


class ColorSwatch(BaseModel):
    """Named palette entry."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    hex: str = ""


class BrandRecord(BaseModel):
    """Brand identity proposal for the idea discussed in the session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: List[str] = Field(default_factory=list)
    tagline: List[str] = Field(default_factory=list)
    color_palette: List[ColorSwatch] = Field(
        default_factory=list,
        validation_alias=AliasChoices("colorPalette", "color_palette"),
    )
    design_rationale: str = Field(
        default="",
        validation_alias=AliasChoices("designRationale", "design_rationale"),
    )
    research_notes: Optional[str] = None

    @field_validator("name", "tagline", mode="before")
    @classmethod
    def _str_lists(cls, value: Any) -> List[str]:
        return _as_str_list(value)

    @field_validator("color_palette", mode="before")
    @classmethod
    def _palette_dicts(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, (dict, ColorSwatch))]


DEFAULT_BRAND = BrandRecord(
    name=["Nexfluc", "InnovateHub", "FutureVentures"],
    tagline=["Your AI Idea Verifier", "Transform Ideas into Reality"],
    color_palette=[
        ColorSwatch(name="Primary", hex="#FF7A1A"),
        ColorSwatch(name="Secondary", hex="#46C3FF"),
        ColorSwatch(name="Accent", hex="#C06FFF"),
    ],
    design_rationale="Modern, tech-forward design that stands out from competitors.",
)
