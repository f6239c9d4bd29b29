# app/repositories/photo_repo.py
from sqlmodel import Session, select

from app.models.photo import UploadedPhoto


class PhotoRepository:
    """Data access layer for uploaded training photos."""

    def get_by_id(self, session: Session, photo_id: int) -> UploadedPhoto | None:
        return session.get(UploadedPhoto, photo_id)

    def list_for_user(self, session: Session, user_id: int) -> list[UploadedPhoto]:
        stmt = (
            select(UploadedPhoto)
            .where(UploadedPhoto.user_id == user_id)
            .order_by(UploadedPhoto.uploaded_at)
        )
        return list(session.exec(stmt).all())

    def list_by_ids(self, session: Session, photo_ids: list[int]) -> list[UploadedPhoto]:
        if not photo_ids:
            return []
        stmt = select(UploadedPhoto).where(UploadedPhoto.id.in_(photo_ids))
        return list(session.exec(stmt).all())

    def create_many(
        self,
        session: Session,
        photos: list[UploadedPhoto],
    ) -> list[UploadedPhoto]:
        session.add_all(photos)
        session.commit()
        for photo in photos:
            session.refresh(photo)
        return photos

    def delete(self, session: Session, photo: UploadedPhoto) -> None:
        session.delete(photo)
        session.commit()

    def delete_many(self, session: Session, photos: list[UploadedPhoto]) -> None:
        for photo in photos:
            session.delete(photo)
        session.commit()
