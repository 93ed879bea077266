"""Private page images: storage paths, guest access checks and presigned URLs.

Images live in the images bucket under ``{owner_id}/{filename}``. A guest never
gets bucket credentials; they trade a space's access token for a 1 hour
presigned GET URL, and only for images owned by that space's owner.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from hostguide import config
from hostguide.backends import SpaceBackend
from hostguide.shared import ALLOWED_IMAGE_EXTS, SIGNED_URL_EXPIRES

log = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"[^/\\\x00-\x1f]+")


class ImageAccessError(Exception):
    """Base of the issuer error taxonomy. ``message`` is what the client sees."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)


class BadRequest(ImageAccessError):
    status_code = 400
    message = "Missing image path"


class InvalidImagePath(BadRequest):
    message = "Invalid image path"


class Unauthorized(ImageAccessError):
    status_code = 401
    message = "Missing access token"


class Forbidden(ImageAccessError):
    # Same message for "unknown token" and "token for another owner".
    status_code = 403
    message = "Invalid token or access denied"


class SigningFailed(ImageAccessError):
    status_code = 500
    message = "Failed to generate signed URL"


@dataclass(frozen=True)
class ImagePath:
    """Object key of a private image with its owner as an explicit field."""

    owner_id: str
    filename: str

    @classmethod
    def parse(cls, raw: str) -> "ImagePath":
        """Parse ``{owner_id}/{filename}``; raise ValueError on anything else."""
        if not isinstance(raw, str):
            raise ValueError("image path must be a string")
        parts = raw.split("/")
        if len(parts) != 2:
            raise ValueError(f"image path must be owner_id/filename: {raw!r}")
        owner_id, filename = parts
        for seg in (owner_id, filename):
            if seg in (".", "..") or not _SEGMENT_RE.fullmatch(seg) or seg != seg.strip():
                raise ValueError(f"bad image path segment: {seg!r}")
        return cls(owner_id=owner_id, filename=filename)

    @property
    def key(self) -> str:
        return f"{self.owner_id}/{self.filename}"

    def __str__(self) -> str:
        return self.key


def new_image_path(owner_id: str, original_filename: str) -> ImagePath:
    """Fresh key for an upload. Raise ValueError for unsupported extensions."""
    ext = PurePosixPath(original_filename or "").suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTS:
        raise ValueError(f"Unsupported image type {ext or '(none)'}")
    return ImagePath.parse(f"{owner_id}/{uuid.uuid4().hex}{ext}")


def s3_client():
    # SigV4 so presigned URLs carry an explicit X-Amz-Expires.
    return boto3.client(
        "s3",
        region_name=config.AWS_REGION,
        config=Config(signature_version="s3v4"),
    )


def authorize_image_access(
    backend: SpaceBackend, raw_path: Optional[str], token: Optional[str]
) -> ImagePath:
    """Check that ``token`` grants access to the image at ``raw_path``.

    Order matters: missing path (400) before missing token (401) before the
    format check (400) before the token/owner lookup (403).
    """
    if not raw_path or not raw_path.strip():
        raise BadRequest()
    if not token or not token.strip():
        raise Unauthorized()
    try:
        image_path = ImagePath.parse(raw_path.strip())
    except ValueError as exc:
        raise InvalidImagePath(str(exc)) from exc

    space = backend.find_space_by_token(token.strip())
    if space is None:
        log.info("image access denied: unknown token owner=%s", image_path.owner_id)
        raise Forbidden("unknown token")
    if space.owner_id != image_path.owner_id:
        log.info("image access denied: space=%s does not belong to owner=%s", space.id, image_path.owner_id)
        raise Forbidden("owner mismatch")
    return image_path


def create_signed_url(s3, bucket: str, image_path: ImagePath) -> str:
    """Presigned GET URL for exactly ``image_path``, valid SIGNED_URL_EXPIRES seconds."""
    try:
        s3.head_object(Bucket=bucket, Key=image_path.key)
        return s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": image_path.key},
            ExpiresIn=SIGNED_URL_EXPIRES,
        )
    except (ClientError, BotoCoreError) as exc:
        log.warning("signing failed bucket=%s key=%s error=%s", bucket, image_path.key, exc)
        raise SigningFailed(str(exc)) from exc


def issue_signed_url(
    backend: SpaceBackend, s3, bucket: str, raw_path: Optional[str], token: Optional[str]
) -> str:
    """Validate, then sign. Raises an ImageAccessError subclass on refusal."""
    image_path = authorize_image_access(backend, raw_path, token)
    return create_signed_url(s3, bucket, image_path)
