# app/repositories/headshot_repo.py
from sqlmodel import Session, select

from app.models.headshot import Headshot, DeletedHeadshot, ExampleHeadshot


class HeadshotRepository:
    """Data access layer for headshots, their archive and the example gallery."""

    # ---- Headshots ----

    def get_by_id(self, session: Session, headshot_id: int) -> Headshot | None:
        return session.get(Headshot, headshot_id)

    def list_for_user(
        self,
        session: Session,
        user_id: int,
        limit: int | None = None,
    ) -> list[Headshot]:
        stmt = (
            select(Headshot)
            .where(Headshot.user_id == user_id)
            .order_by(Headshot.created_at.desc(), Headshot.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(session.exec(stmt).all())

    def create(self, session: Session, headshot: Headshot) -> Headshot:
        session.add(headshot)
        session.commit()
        session.refresh(headshot)
        return headshot

    def update(self, session: Session, headshot: Headshot) -> Headshot:
        session.add(headshot)
        session.commit()
        session.refresh(headshot)
        return headshot

    def archive_and_delete(self, session: Session, headshot: Headshot) -> DeletedHeadshot:
        """
        Copy the row into deleted_headshots and remove it, in one commit.
        """
        archived = DeletedHeadshot(
            headshot_id=headshot.id,
            user_id=headshot.user_id,
            model_id=headshot.model_id,
            style=headshot.style,
            file_path=headshot.file_path,
            image_url=headshot.image_url,
            replicate_prediction_id=headshot.replicate_prediction_id,
            prompt=headshot.prompt,
            meta=headshot.meta,
            favorite=headshot.favorite,
            created_at=headshot.created_at,
        )
        session.add(archived)
        session.delete(headshot)
        session.commit()
        session.refresh(archived)
        return archived

    # ---- Example gallery ----

    def list_examples(self, session: Session) -> list[ExampleHeadshot]:
        stmt = select(ExampleHeadshot).order_by(ExampleHeadshot.id)
        return list(session.exec(stmt).all())

    def get_example(self, session: Session, example_id: int) -> ExampleHeadshot | None:
        return session.get(ExampleHeadshot, example_id)

    def create_example(self, session: Session, example: ExampleHeadshot) -> ExampleHeadshot:
        session.add(example)
        session.commit()
        session.refresh(example)
        return example
