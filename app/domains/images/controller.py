"""Image upload and retrieval endpoints."""

import logging

from fastapi import APIRouter, Body, Depends, File, Form, Path, Request, UploadFile, status
from fastapi.responses import FileResponse

from app.core.dependencies import get_image_store
from app.exceptions.image import ImageNotFoundError
from app.schemas.generation import ImageUploadResponse, SaveGeneratedImageRequest
from app.services.image_store import ImageStore
from app.shared.image_refs import mime_type_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/images", tags=["images"])


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_image(
    _request: Request,
    image: UploadFile = File(..., description="Image file"),
    chat_id: str = Form(..., alias="chatId", min_length=1),
    message_index: int = Form(..., alias="messageIndex", ge=0),
    image_index: int = Form(..., alias="imageIndex", ge=0),
    store: ImageStore = Depends(get_image_store),
):
    """Store an input image attached to a user message."""
    data = await image.read()
    url, filename = await store.save_upload(data, image.content_type, chat_id, message_index, image_index)
    logger.info(f"Uploaded input image {filename}")
    return ImageUploadResponse(url=url, filename=filename).model_dump(by_alias=True)


@router.post("/save-generated", status_code=status.HTTP_201_CREATED)
async def save_generated_image(
    _request: Request,
    image_data: SaveGeneratedImageRequest = Body(...),
    store: ImageStore = Depends(get_image_store),
):
    """Store a generated image given as inline data or a URL to download."""
    url, filename = await store.save_generated(
        image_data.chat_id,
        image_data.message_index,
        image_data.version_index,
        image_data.image_index,
        base64_data=image_data.base64,
        image_url=image_data.image_url,
    )
    logger.info(f"Saved generated image {filename}")
    return ImageUploadResponse(url=url, filename=filename).model_dump(by_alias=True)


@router.get("/{image_type}/{filename}")
async def get_image(
    image_type: str = Path(..., description="input or generated"),
    filename: str = Path(..., description="Stored filename"),
    store: ImageStore = Depends(get_image_store),
):
    path = store.path_for(image_type, filename)
    if not path.is_file():
        raise ImageNotFoundError(image_type, filename)
    return FileResponse(path, media_type=mime_type_for(filename))
