"""
Image storage for rooms and smart boards.

Uploaded files are kept in one flat directory under names made of random
hex plus the original extension; the name is the only handle the database
stores. The original filename never reaches the file system.
"""
import os, logging, re, secrets
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional

from errors import FileTooLargeError, NotFoundError, UpstreamError, ValidationError

log = logging.getLogger(__name__)

UPLOAD_DIR = "uploads"
MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif"}

_FILE_ID = re.compile(r"^[0-9a-f]{32}\.(jpeg|jpg|png|gif)$")


class FileStorage:
    def __init__(self, directory: str = UPLOAD_DIR, max_bytes: int = MAX_IMAGE_BYTES):
        self.directory = directory
        self.max_bytes = max_bytes
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, file_id: str) -> str:
        return os.path.join(self.directory, file_id)

    def store(self, stream: BinaryIO, original_name: Optional[str], content_type: Optional[str]) -> str:
        """Validate and persist an image; return its generated file id."""
        ext = os.path.splitext(original_name or "")[1].lower()
        ctype = (content_type or "").split(";")[0].strip().lower()
        if ext not in ALLOWED_EXTENSIONS or ctype not in ALLOWED_CONTENT_TYPES:
            raise ValidationError("Only image files are allowed (jpeg, jpg, png, gif)", field="image")

        # read one byte past the cap so oversize uploads fail before touching disk
        data = stream.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            raise FileTooLargeError(self.max_bytes)

        file_id = f"{secrets.token_hex(16)}{ext}"
        try:
            with open(self._path(file_id), "xb") as f:
                f.write(data)
        except OSError as e:
            log.error("Could not write image %s: %s", file_id, e)
            self.discard(file_id)
            raise UpstreamError() from e
        log.info("Stored image %s (%d bytes, uploaded as %r)", file_id, len(data), original_name)
        return file_id

    def delete(self, file_id: Optional[str]) -> None:
        """Remove a stored file. A file that is already gone counts as deleted."""
        if not file_id:
            return
        try:
            os.remove(self._path(os.path.basename(file_id)))
            log.info("Deleted image %s", file_id)
        except FileNotFoundError:
            log.debug("Image %s already absent", file_id)

    def discard(self, file_id: Optional[str]) -> None:
        """Best-effort delete for cleanup paths; never raises."""
        try:
            self.delete(file_id)
        except OSError as e:
            log.error("Error cleaning up image %s: %s", file_id, e)

    def resolve(self, file_id: str) -> str:
        """Path of a stored image, or NotFoundError."""
        if not _FILE_ID.match(file_id or ""):
            raise NotFoundError("Image", file_id)
        path = self._path(file_id)
        if not os.path.isfile(path):
            raise NotFoundError("Image", file_id)
        return path

    @contextmanager
    def staged(self, upload) -> Iterator[Optional[str]]:
        """
        Store ``upload`` (a FastAPI UploadFile, or None) for the duration of a
        write. If the block raises, the stored file is discarded before the
        exception propagates, so failed writes never leave orphans behind.
        """
        if upload is None or not upload.filename:
            yield None
            return
        file_id = self.store(upload.file, upload.filename, upload.content_type)
        try:
            yield file_id
        except BaseException:
            self.discard(file_id)
            raise
