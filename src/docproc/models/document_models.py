"""
Normalized document representation.

Every provider adapter converts its terminal payload into a DocumentIR so
that downstream consumers never see provider-specific shapes. Provider
details that have no common field go into ``extras``.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# US Letter at 72 DPI, used when a provider reports no page geometry
DEFAULT_PAGE_WIDTH = 612.0
DEFAULT_PAGE_HEIGHT = 792.0


class BBox(BaseModel):
    """Axis-aligned box in page coordinates: origin plus width/height."""

    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_corners(cls, corners: list[float]) -> "BBox":
        """Convert ``[x1, y1, x2, y2]`` into origin/size form."""
        x1, y1, x2, y2 = corners[:4]
        return cls(x=x1, y=y1, w=x2 - x1, h=y2 - y1)


class IRLine(BaseModel):
    """One line (or block) of recognized text."""

    text: str = ""
    bbox: Optional[BBox] = None
    start_char: Optional[int] = Field(default=None, ge=0)
    end_char: Optional[int] = Field(default=None, ge=0)
    line_id: Optional[str] = None
    confidence: Optional[str | float] = None
    block_type: Optional[str] = None


class IRPage(BaseModel):
    """One page, or one semantic chunk for providers that do not paginate."""

    page_number: Optional[int] = Field(default=None, ge=1)
    width: float = DEFAULT_PAGE_WIDTH
    height: float = DEFAULT_PAGE_HEIGHT
    lines: list[IRLine] = Field(default_factory=list)
    markdown: Optional[str] = None
    extras: Dict[str, Any] = Field(default_factory=dict)


class DocumentIR(BaseModel):
    """Provider-independent document produced by every adapter."""

    pages: list[IRPage] = Field(default_factory=list)
    extras: Dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """All line text, pages separated by a blank line."""
        return "\n\n".join(
            "\n".join(line.text for line in page.lines) for page in self.pages
        )


class DocumentSource(BaseModel):
    """A document to submit: either a URL or base64 data (optionally a data URL)."""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    base64: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "DocumentSource":
        if bool(self.url) == bool(self.base64):
            raise ValueError("Exactly one of url or base64 must be provided")
        return self


class StructuredResult(BaseModel):
    """JSON produced by an extraction-style job (extract, tables, classify, split)."""

    provider: str
    operation: str
    data: Any = None
    job_id: Optional[str] = None
    credits_used: Optional[float] = Field(
        default=None, description="Quota consumed by the job, when the provider reports it"
    )
    raw: Dict[str, Any] = Field(default_factory=dict)
