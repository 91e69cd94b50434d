"""
Blob-store gateway: uploads generated images to Cloudinary and returns the
public URL.

The SDK uploader is blocking, so each upload runs in a worker thread.
"""
import asyncio
import io
import logging
import os
import re
import secrets
import time
from typing import Any, Optional

import cloudinary.exceptions
import cloudinary.uploader

from .errors import ClassifiedError, ErrorKind, classify, config_missing, truncate
from .models import Stage

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET")
DEFAULT_FOLDER = "veritas_ai_articles"
HINT_CHARS = 30


def build_public_id(hint: Optional[str], folder: str = DEFAULT_FOLDER, now_ms: Optional[int] = None) -> str:
    """``{folder}/{sanitized hint}_{epoch ms}_{random token}``."""
    suffix = re.sub(r"[^a-z0-9_]+", "_", hint.lower())[:HINT_CHARS] if hint else ""
    if not suffix.strip("_"):
        suffix = "article"
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{folder}/{suffix}_{now_ms}_{secrets.token_hex(3)}"


def _secure_url(result: Any) -> str:
    if isinstance(result, dict) and isinstance(result.get("error"), dict):
        raise cloudinary.exceptions.Error(result["error"].get("message", "upload rejected"))

    url = result.get("secure_url") if isinstance(result, dict) else None
    if not isinstance(url, str) or not url.startswith(("https://", "http://")):
        logger.error("Upload result missing secure_url: %s", truncate(str(result)))
        raise ClassifiedError(
            ErrorKind.STORAGE_FAILURE,
            Stage.STORAGE,
            "Image uploaded, but the storage service did not return a valid URL. Please retry the upload.",
            detail=truncate(str(result)),
        )
    return url


async def store(image: bytes, hint: str) -> str:
    """Upload ``image`` under an identifier derived from ``hint`` and return its public URL."""
    missing = [name for name in REQUIRED_SETTINGS if not os.getenv(name)]
    if missing:
        raise config_missing(Stage.STORAGE, *missing)

    cloud_name, api_key, api_secret = (os.environ[name] for name in REQUIRED_SETTINGS)
    public_id = build_public_id(hint, os.getenv("CLOUDINARY_FOLDER", DEFAULT_FOLDER))

    logger.info("Storage stage: uploading %d bytes as %s", len(image), public_id)
    try:
        result = await asyncio.to_thread(
            cloudinary.uploader.upload,
            io.BytesIO(image),
            public_id=public_id,
            overwrite=True,
            resource_type="image",
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
            timeout=float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
        )
        url = _secure_url(result)
    except Exception as exc:
        raise classify(Stage.STORAGE, exc)

    logger.info("Storage stage stored image at %s", url)
    return url
