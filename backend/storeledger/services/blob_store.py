# Overview: Local filesystem blob store for selfies, count evidence and PO attachments.

"""
Blob store

The ledger never inspects uploaded content; it only keeps the relative path
returned by save(). Uploads happen before the ledger transaction opens.
"""

from __future__ import annotations

import os
import uuid

from werkzeug.utils import secure_filename

from ..errors import ValidationError


class LocalBlobStore:
    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def save(self, owner_id, data: bytes, suggested_name: str | None = None) -> str:
        """Write bytes under <owner_id>/<uuid><ext> and return the relative path."""
        if not data:
            raise ValidationError("Upload is empty", details={"field": "file"})

        owner = secure_filename(str(owner_id)) or "shared"
        ext = os.path.splitext(secure_filename(suggested_name or ""))[1].lower()
        relative = f"{owner}/{uuid.uuid4().hex}{ext}"

        target = os.path.join(self.root, relative)
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "wb") as fh:
            fh.write(data)
        return relative

    def open(self, relative_path: str) -> bytes:
        target = os.path.abspath(os.path.join(self.root, relative_path))
        if not target.startswith(self.root + os.sep):
            raise ValidationError("Invalid path", details={"path": relative_path})
        with open(target, "rb") as fh:
            return fh.read()
