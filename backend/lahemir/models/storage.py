from __future__ import annotations

from ..extensions import db
from lahemir.time_utils import to_utc_z


class StorageSlot(db.Model):
    """
    One persisted key-value slot.

    The value is the JSON text of a whole collection (or settings object);
    writers replace it wholesale, and a cleared slot holds NULL. ``version`` increases on every write so a
    reader can tell that someone else changed the slot since it last looked.
    """
    __tablename__ = "storage_slots"

    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "version": self.version,
            "updated_at": to_utc_z(self.updated_at),
            "size": len(self.value or ""),
        }


class ImageBlob(db.Model):
    """Product image bytes, kept out of the JSON product records."""
    __tablename__ = "image_blobs"

    product_id = db.Column(db.String(128), primary_key=True)
    content_type = db.Column(db.String(64), nullable=False, default="image/png")
    data = db.Column(db.LargeBinary, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "content_type": self.content_type,
            "size": len(self.data or b""),
            "updated_at": to_utc_z(self.updated_at),
        }
