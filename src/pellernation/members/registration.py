"""Member sign-up: field validation, profile image storage and insert."""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pellernation.db.models import AllowedImageType
from pellernation.errors import StoreError, ValidationError
from pellernation.members.store import MemberStore, NewMember

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class ImageUpload:
    """Profile image received in the multipart form."""

    filename: str
    content_type: str
    data: bytes


@dataclass
class RegistrationForm:
    """Raw form fields, exactly as submitted."""

    nickname: Optional[str] = None
    tiktok_handle: Optional[str] = None
    fan_since: Optional[str] = None
    badge: Optional[str] = None
    nationality: Optional[str] = None
    email: Optional[str] = None
    image: Optional[ImageUpload] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_badge_amount(badge: str) -> int:
    """
    Convert the submitted badge tier into the expected payment amount.

    The badge is the amount itself in base currency units ("5000" -> 5000).

    Raises:
        ValidationError: If the badge is not a positive whole number
    """
    try:
        amount = int(badge, 10)
    except ValueError:
        raise ValidationError("Badge must be a whole number amount")
    if amount <= 0:
        raise ValidationError("Badge must be a positive amount")
    return amount


def stored_image_name(original: str) -> str:
    """Timestamped, path-free file name for an uploaded image."""
    base = _UNSAFE_FILENAME_CHARS.sub("_", Path(original).name).strip("._") or "image"
    return f"{int(time.time() * 1000)}-{base}"


async def save_image(image: ImageUpload, upload_dir: Path) -> str:
    """
    Write an uploaded image into upload_dir.

    Returns:
        Stored path, relative to the working directory when upload_dir is

    Raises:
        ValidationError: If the content type is not an allowed image type
        StoreError: If the file cannot be written
    """
    allowed = {t.value for t in AllowedImageType}
    if image.content_type not in allowed:
        raise ValidationError("Only image files allowed")

    path = upload_dir / stored_image_name(image.filename)
    try:
        await asyncio.to_thread(upload_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, image.data)
    except OSError as e:
        logger.error(f"Failed to store image {image.filename!r}: {e}")
        raise StoreError() from e

    return str(path)


async def register_member(
    store: MemberStore,
    form: RegistrationForm,
    upload_dir: Path,
) -> int:
    """
    Validate a sign-up form, store its image and insert the member.

    Args:
        store: Member store
        form: Submitted fields
        upload_dir: Directory for profile images

    Returns:
        New member id

    Raises:
        ValidationError: Missing required field, bad badge or non-image upload
        StoreError: Image or row could not be persisted
    """
    nickname = _clean(form.nickname)
    handle = _clean(form.tiktok_handle)
    badge = _clean(form.badge)
    nationality = _clean(form.nationality)

    if not (nickname and handle and badge and nationality):
        raise ValidationError("All fields are required")

    amount = parse_badge_amount(badge)

    image_path = None
    if form.image is not None:
        image_path = await save_image(form.image, upload_dir)

    new_member = NewMember(
        nickname=nickname,
        tiktok_handle=handle,
        badge=badge,
        nationality=nationality,
        amount=amount,
        fan_since=_clean(form.fan_since),
        email=_clean(form.email),
        image_path=image_path,
    )

    try:
        return await store.create(new_member)
    except StoreError:
        if image_path:
            # Orphaned upload
            Path(image_path).unlink(missing_ok=True)
        raise
