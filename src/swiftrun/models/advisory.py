"""Route advisory models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AdvisoryLink(BaseModel):
    """A citation returned alongside route advice."""

    model_config = ConfigDict(frozen=True)

    title: str
    uri: str


class AdvisoryResult(BaseModel):
    """Free-text route advice plus optional citation links."""

    model_config = ConfigDict(frozen=True)

    text: str
    links: list[AdvisoryLink] = Field(default_factory=list)
    ok: bool = True
    """``False`` when ``text`` is a fallback message for a failed request."""
