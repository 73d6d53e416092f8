"""Image generation proxy and health endpoints."""

import json
import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.dependencies import get_generation_client
from app.exceptions.chat import EmptyPromptError
from app.exceptions.generation import GenerationConfigurationError, GenerationError
from app.exceptions.image import InvalidImageError
from app.schemas.base import ResponseSchema
from app.schemas.generation import HealthResponse
from app.services.image_generation import ImageGenerationClient
from app.shared.image_refs import encode_data_uri

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generation"])


def parse_image_urls(raw: str | None) -> list[str]:
    """Accept a JSON list of URLs or a single bare URL."""
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return [raw]
    if isinstance(parsed, list):
        return [str(url) for url in parsed if url]
    return [str(parsed)]


def parse_num_images(raw: str | None) -> int:
    try:
        value = int(raw) if raw else 0
    except ValueError:
        value = 0
    return value if value > 0 else settings.default_num_images


@router.get("/health")
async def health_check(
    client: ImageGenerationClient = Depends(get_generation_client),
):
    """Report whether the generation API key is configured."""
    return HealthResponse(status="ok", has_api_key=client.configured).model_dump(by_alias=True)


@router.post("/generate")
async def generate(
    _request: Request,
    prompt: str | None = Form(None),
    model: str | None = Form(None),
    num_images: str | None = Form(None),
    image_urls: str | None = Form(None),
    images: list[UploadFile] = File(default=[]),
    client: ImageGenerationClient = Depends(get_generation_client),
):
    """Forward a generation request and return the API response unchanged.

    Uploaded files are sent inline after any ``image_urls``.
    """
    if not client.configured:
        raise GenerationConfigurationError()
    if not prompt or not prompt.strip():
        raise EmptyPromptError()
    if len(images) > settings.max_upload_files:
        raise InvalidImageError(
            f"At most {settings.max_upload_files} images can be uploaded", details={"count": len(images)}
        )

    urls = parse_image_urls(image_urls)
    for upload in images:
        data = await upload.read()
        if len(data) > settings.max_upload_size:
            raise InvalidImageError("Image exceeds the upload size limit", details={"filename": upload.filename})
        urls.append(encode_data_uri(data, upload.content_type or "image/png"))

    payload = {
        "model": model or settings.default_model,
        "prompt": prompt,
        "num_images": parse_num_images(num_images),
    }
    if urls:
        payload["image_urls"] = urls

    logger.info(f"Proxying generation request with {len(urls)} image(s) to {payload['model']}")
    try:
        return await client.request(payload)
    except GenerationError as e:
        logger.error(f"Generation proxy error: {e.message}")
        return JSONResponse(
            status_code=e.status_code,
            content=ResponseSchema(
                status="error",
                message=e.message,
                data={"error_code": e.error_code, "details": e.details},
            ).model_dump(),
        )
