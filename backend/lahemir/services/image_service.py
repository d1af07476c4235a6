# Overview: Product image blob store; keeps image bytes out of the JSON product records.

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import StorageAccessError, ValidationError
from ..extensions import db
from ..models import ImageBlob
from .storage_service import SlotBackend, SqlSlotBackend
from lahemir.time_utils import utcnow

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(r"^data:(?P<type>image/[A-Za-z0-9.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


def is_image_data_uri(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("data:image")


def data_uri_to_blob(data_uri: str) -> tuple[str, bytes]:
    """Split a ``data:image/...;base64,...`` URI into (content_type, bytes)."""
    match = DATA_URI_RE.match(data_uri or "")
    if not match or not match.group("b64"):
        raise ValidationError("Image must be a base64 data URI")
    try:
        content = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64")
    return match.group("type") or "image/png", content


def blob_to_data_uri(content_type: str, content: bytes) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


class ImageStore:
    """
    Keyed binary storage (product id -> image).

    Writes join the slot backend's atomic block when one is open so a product
    and its image land together.
    """

    def __init__(self, backend: SlotBackend):
        self.backend = backend

    def save_image(self, product_id: str, content: bytes, content_type: str = "image/png") -> None:
        raise NotImplementedError

    def get_image(self, product_id: str) -> Optional[ImageBlob]:
        raise NotImplementedError

    def delete_image(self, product_id: str) -> bool:
        """Remove a product's image. Missing images are not an error."""
        raise NotImplementedError

    def clear_images(self) -> int:
        raise NotImplementedError

    def save_data_uri(self, product_id: str, data_uri: str) -> None:
        content_type, content = data_uri_to_blob(data_uri)
        self.save_image(product_id, content, content_type)

    def get_data_uri(self, product_id: str) -> Optional[str]:
        blob = self.get_image(product_id)
        if blob is None:
            return None
        return blob_to_data_uri(blob.content_type, blob.data)


class MemoryImageStore(ImageStore):
    """Process-local images for a MemorySlotBackend; an atomic rollback restores them."""

    def __init__(self, backend: SlotBackend):
        super().__init__(backend)
        self._blobs: dict[str, ImageBlob] = {}
        self._snapshot: Optional[dict[str, ImageBlob]] = None

    def _before_write(self) -> None:
        if not self.backend.in_atomic or self._snapshot is not None:
            return
        self._snapshot = dict(self._blobs)
        self.backend.after_commit(self._drop_snapshot)
        self.backend.after_rollback(self._restore_snapshot)

    def _drop_snapshot(self) -> None:
        self._snapshot = None

    def _restore_snapshot(self) -> None:
        if self._snapshot is not None:
            self._blobs = self._snapshot
        self._snapshot = None

    def save_image(self, product_id, content, content_type="image/png"):
        self._before_write()
        self._blobs[product_id] = ImageBlob(
            product_id=product_id,
            content_type=content_type,
            data=bytes(content),
            updated_at=utcnow(),
        )

    def get_image(self, product_id):
        return self._blobs.get(product_id)

    def delete_image(self, product_id):
        self._before_write()
        return self._blobs.pop(product_id, None) is not None

    def clear_images(self):
        self._before_write()
        deleted = len(self._blobs)
        self._blobs = {}
        logger.info("Cleared %d product images", deleted)
        return deleted


class SqlImageStore(ImageStore):
    """
    Images in the ``image_blobs`` table, sharing the slot backend's session.

    Outside an application context the store behaves as empty, like
    SqlSlotBackend.
    """

    def _finish_write(self) -> None:
        if self.backend.in_atomic:
            db.session.flush()
        else:
            db.session.commit()

    def save_image(self, product_id, content, content_type="image/png"):
        if not SqlSlotBackend.available():
            return
        try:
            blob = db.session.get(ImageBlob, product_id)
            if blob is None:
                blob = ImageBlob(product_id=product_id)
                db.session.add(blob)
            blob.content_type = content_type
            blob.data = content
            blob.updated_at = utcnow()
            self._finish_write()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError("Failed to save product image") from exc

    def get_image(self, product_id):
        if not SqlSlotBackend.available():
            return None
        try:
            return db.session.get(ImageBlob, product_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError("Failed to read product image") from exc

    def delete_image(self, product_id):
        if not SqlSlotBackend.available():
            return False
        try:
            deleted = db.session.query(ImageBlob).filter(ImageBlob.product_id == product_id).delete()
            self._finish_write()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError("Failed to delete product image") from exc
        return bool(deleted)

    def clear_images(self):
        if not SqlSlotBackend.available():
            return 0
        try:
            deleted = db.session.query(ImageBlob).delete()
            self._finish_write()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError("Failed to clear product images") from exc
        logger.info("Cleared %d product images", deleted)
        return deleted


def image_store_for(backend: SlotBackend) -> ImageStore:
    """The image store that shares ``backend``'s storage and atomic blocks."""
    if isinstance(backend, SqlSlotBackend):
        return SqlImageStore(backend)
    return MemoryImageStore(backend)
