from __future__ import annotations

from fastapi import APIRouter, Depends

from teamchat.api.deps import require_user
from teamchat.core.link_previews import fetch_link_metadata
from teamchat.core.principal import Principal
from teamchat.schemas.link_previews import LinkPreviewIn, LinkPreviewOut
from teamchat.schemas.messages import LinkPreview

router = APIRouter(prefix="/link-previews", tags=["link_previews"])


@router.post("", response_model=LinkPreviewOut)
def preview(payload: LinkPreviewIn, principal: Principal = Depends(require_user)):
    # a failed fetch is "no preview", never an error
    meta = fetch_link_metadata(payload.url)
    return LinkPreviewOut(preview=LinkPreview(**meta) if meta else None)
