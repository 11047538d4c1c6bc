"""
Background assets for template overlay rendering.

Users upload a letterhead as a data URI (data:<mime>;base64,...): a PNG/JPEG
scan or an existing PDF. Decoding problems are TemplateErrors so the
generation pipeline can fall back to the basic layout.
"""

import base64
import binascii
import logging
import re
from typing import Optional

from decoupe.core.store import KeyValueStore
from decoupe.forms.errors import TemplateError

log = logging.getLogger("decoupe.background")

MAX_BACKGROUND_BYTES = 10 * 1024 * 1024

PDF_MIME = "application/pdf"
IMAGE_MIMES = {"image/png": "image/png", "image/jpeg": "image/jpeg", "image/jpg": "image/jpeg"}

BACKGROUND_KEY = "devis_template"
BACKGROUND_NAME_KEY = "devis_template_name"
BACKGROUND_TYPE_KEY = "devis_template_type"

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w=.-]+)*;base64,(?P<data>.*)$",
                       re.DOTALL)


class BackgroundAsset:
    """A decoded background: mime type + raw bytes."""

    def __init__(self, mime_type: str, data: bytes, name: str = ""):
        self.mime_type = mime_type
        self.data = data
        self.name = name

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME

    @property
    def is_image(self) -> bool:
        return self.mime_type in IMAGE_MIMES.values()

    @classmethod
    def from_data_uri(cls, uri: str, name: str = "") -> "BackgroundAsset":
        m = _DATA_URI.match((uri or "").strip())
        if not m:
            raise TemplateError("Background is not a base64 data URI", stage="background_decode")
        mime = m.group("mime").lower()
        if mime != PDF_MIME and mime not in IMAGE_MIMES:
            raise TemplateError(f"Unsupported background type: {mime}", stage="background_decode")
        mime = IMAGE_MIMES.get(mime, mime)

        payload = re.sub(r"\s", "", m.group("data"))
        # base64 is 4/3 the size of the decoded bytes
        if len(payload) * 3 // 4 > MAX_BACKGROUND_BYTES:
            raise TemplateError("Background exceeds 10MB", stage="background_decode")
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TemplateError(f"Background is not valid base64: {e}",
                                stage="background_decode") from e
        if len(data) > MAX_BACKGROUND_BYTES:
            raise TemplateError("Background exceeds 10MB", stage="background_decode")
        if mime == PDF_MIME and not data.startswith(b"%PDF-"):
            raise TemplateError("Background declared as PDF has no %PDF- header",
                                stage="background_decode")
        return cls(mime, data, name)

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode()}"

    def __repr__(self):
        return f"BackgroundAsset({self.mime_type}, {len(self.data)} bytes)"


class BackgroundLibrary:
    """The installation's current background, persisted as its data URI."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def save(self, data_uri: str, name: str = "") -> BackgroundAsset:
        asset = BackgroundAsset.from_data_uri(data_uri, name)
        self.store.set(BACKGROUND_KEY, asset.to_data_uri())
        self.store.set(BACKGROUND_NAME_KEY, name)
        self.store.set(BACKGROUND_TYPE_KEY, asset.mime_type)
        log.info("Background saved: %s (%s, %d bytes)", name or "(unnamed)",
                 asset.mime_type, len(asset.data))
        return asset

    def load(self) -> Optional[BackgroundAsset]:
        uri = self.store.get(BACKGROUND_KEY)
        if not uri:
            return None
        try:
            return BackgroundAsset.from_data_uri(uri, self.store.get(BACKGROUND_NAME_KEY, "") or "")
        except TemplateError as e:
            log.warning("Saved background unreadable, ignoring it: %s", e)
            return None

    def has_background(self) -> bool:
        return bool(self.store.get(BACKGROUND_KEY))

    def clear(self) -> None:
        for key in (BACKGROUND_KEY, BACKGROUND_NAME_KEY, BACKGROUND_TYPE_KEY):
            self.store.delete(key)
