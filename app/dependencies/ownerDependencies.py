from typing import Annotated, Optional
from fastapi import Depends, Header, HTTPException, status

from app.modules.documents.renderer import DocumentRenderer, PdfDocumentRenderer
from app.modules.files.service import ArtifactStore, get_artifact_store


def get_owner_id(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> int:
    """Owner identity, resolved upstream by the authentication layer and forwarded as a header"""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Owner context not found. Ensure X-User-ID header is provided."
        )
    try:
        owner_id = int(x_user_id)
    except ValueError:
        owner_id = 0
    if owner_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID header"
        )
    return owner_id


def get_client_id(x_client_id: Optional[str] = Header(None, alias="X-Client-ID")) -> int:
    """Client identity for portal reads"""
    if not x_client_id or not x_client_id.isdigit() or int(x_client_id) <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client context not found. Ensure X-Client-ID header is provided."
        )
    return int(x_client_id)


def get_renderer() -> DocumentRenderer:
    return PdfDocumentRenderer()


OwnerId = Annotated[int, Depends(get_owner_id)]
ClientId = Annotated[int, Depends(get_client_id)]
ArtifactStoreDep = Annotated[ArtifactStore, Depends(get_artifact_store)]
RendererDep = Annotated[DocumentRenderer, Depends(get_renderer)]
