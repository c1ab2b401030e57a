from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from teamchat.schemas.messages import LinkPreview


class LinkPreviewIn(BaseModel):
    url: str = Field(min_length=1, max_length=2000)


class LinkPreviewOut(BaseModel):
    preview: Optional[LinkPreview] = None
