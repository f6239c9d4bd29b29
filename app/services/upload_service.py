# app/services/upload_service.py
import io
import logging
import os
import zipfile
from typing import Iterable

from sqlmodel import Session

from app.core import storage_utils
from app.core.auth import ARCHIVE, decode_token
from app.core.errors import Forbidden, NotFound, ValidationError
from app.models.photo import UploadedPhoto
from app.models.user import User
from app.repositories.photo_repo import PhotoRepository

logger = logging.getLogger(__name__)


# --- Upload limits ---

MAX_FILES = 20
MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5MB per image

ALLOWED_IMAGE_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
}


class UploadService:
    """
    Training photos on local disk.

    Responsibilities:
      - validate type/size/count before anything touches the disk
      - keep DB rows and files in step (rows are the source of truth)
      - build the zip archive the trainer downloads
    """

    def __init__(self, repo: PhotoRepository):
        self.repo = repo

    @staticmethod
    def _validate(filename: str, content_type: str | None, file_bytes: bytes) -> None:
        if content_type not in ALLOWED_IMAGE_CONTENT_TYPES:
            raise ValidationError(
                f"Unsupported image type for {filename}. Allowed: JPEG, PNG, WEBP, HEIC."
            )
        if not file_bytes:
            raise ValidationError(f"{filename} is empty")
        if len(file_bytes) > MAX_IMAGE_BYTES:
            raise ValidationError(f"{filename} is too large. Max 5MB per image.")

    def upload(
        self,
        session: Session,
        user: User,
        files: Iterable[tuple[str, str | None, bytes]],
    ) -> list[UploadedPhoto]:
        """
        Store a batch of photos.

        Args:
            files: iterable of (filename, content_type, file_bytes)

        All files are validated first; a batch with one bad file stores
        nothing.
        """
        files = list(files)
        if not files:
            raise ValidationError("No files uploaded")
        if len(files) > MAX_FILES:
            raise ValidationError(f"Too many files. Max {MAX_FILES} per upload.")

        for filename, content_type, file_bytes in files:
            self._validate(filename, content_type, file_bytes)

        target = storage_utils.user_dir(storage_utils.UPLOADS, user.id)
        photos: list[UploadedPhoto] = []
        written: list[str] = []
        try:
            for filename, _content_type, file_bytes in files:
                path = storage_utils.save_bytes(
                    target / storage_utils.unique_upload_name(filename),
                    file_bytes,
                )
                written.append(path)
                photos.append(
                    UploadedPhoto(
                        user_id=user.id,
                        filename=filename,
                        file_size=len(file_bytes),
                        path=path,
                    )
                )
            photos = self.repo.create_many(session, photos)
        except Exception:
            for path in written:
                storage_utils.delete_file(path)
            raise

        logger.info("User %s uploaded %s photos", user.id, len(photos))
        return photos

    def list_photos(self, session: Session, user: User) -> list[UploadedPhoto]:
        return self.repo.list_for_user(session, user.id)

    def get_photo(self, session: Session, user: User, photo_id: int) -> UploadedPhoto:
        photo = self.repo.get_by_id(session, photo_id)
        if photo is None:
            raise NotFound("Photo not found")
        if photo.user_id != user.id:
            raise Forbidden("Access denied")
        return photo

    def delete_photo(self, session: Session, user: User, photo_id: int) -> None:
        photo = self.get_photo(session, user, photo_id)
        path = photo.path
        self.repo.delete(session, photo)
        storage_utils.delete_file(path)

    def delete_all(self, session: Session, user: User) -> int:
        photos = self.repo.list_for_user(session, user.id)
        paths = [p.path for p in photos]
        self.repo.delete_many(session, photos)
        for path in paths:
            storage_utils.delete_file(path)
        return len(paths)

    def preview_path(self, session: Session, user: User, photo_id: int) -> str:
        photo = self.get_photo(session, user, photo_id)
        if not storage_utils.is_within_data_dir(photo.path) or not storage_utils.file_exists(photo.path):
            raise NotFound("File not found")
        return photo.path

    # ----- Training archive -----

    def build_archive(
        self,
        session: Session,
        user_id: int,
        token: str,
        photo_ids: list[int] | None = None,
    ) -> bytes:
        """
        Zip a user's photos for the trainer.

        The token must be an archive token issued for this user. When
        photo_ids is given only those (owned) photos are included.
        """
        if decode_token(token, ARCHIVE) != user_id:
            raise Forbidden("Token does not match user")

        if photo_ids:
            photos = [p for p in self.repo.list_by_ids(session, photo_ids) if p.user_id == user_id]
        else:
            photos = self.repo.list_for_user(session, user_id)

        present = [p for p in photos if storage_utils.file_exists(p.path)]
        if not present:
            raise NotFound("No photos found")

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for photo in present:
                zf.write(photo.path, arcname=os.path.basename(photo.path))
        return buffer.getvalue()


def parse_ids(raw: str | None) -> list[int] | None:
    """Parse the `ids=1,2,3` query parameter; None when absent."""
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValidationError("Invalid ids parameter")
