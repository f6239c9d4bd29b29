# app/repositories/model_repo.py
from datetime import datetime, timezone

from sqlalchemy import update
from sqlmodel import Session, select

from app.models.training import TrainedModel, STATUS_TRAINING


class ModelRepository:
    """
    Data access layer for training jobs (`models` table).

    NOTE:
      - finish() and set_progress() do not commit; the training service
        decides what else belongs in the same transaction.
    """

    def get_by_id(self, session: Session, model_id: int) -> TrainedModel | None:
        return session.get(TrainedModel, model_id)

    def list_for_user(self, session: Session, user_id: int) -> list[TrainedModel]:
        stmt = (
            select(TrainedModel)
            .where(TrainedModel.user_id == user_id)
            .order_by(TrainedModel.created_at.desc())
        )
        return list(session.exec(stmt).all())

    def create(self, session: Session, model: TrainedModel) -> TrainedModel:
        session.add(model)
        session.commit()
        session.refresh(model)
        return model

    def update(self, session: Session, model: TrainedModel) -> TrainedModel:
        session.add(model)
        session.commit()
        session.refresh(model)
        return model

    def set_progress(self, session: Session, model_id: int, progress: int) -> None:
        """Progress only moves while the job is still training."""
        stmt = (
            update(TrainedModel)
            .where(
                TrainedModel.id == model_id,
                TrainedModel.status == STATUS_TRAINING,
            )
            .values(progress=progress)
        )
        session.exec(stmt)

    def finish(
        self,
        session: Session,
        model_id: int,
        status: str,
        *,
        error: str | None = None,
        version_id: str | None = None,
        progress: int | None = None,
    ) -> bool:
        """
        Compare-and-set the terminal transition.

        Only a row still in "training" is updated. Returns True when this
        call performed the transition, False when another writer (webhook
        or poller) got there first.
        """
        values: dict = {
            "status": status,
            "completed_at": datetime.now(timezone.utc),
            "error": error,
        }
        if version_id is not None:
            values["replicate_version_id"] = version_id
        if progress is not None:
            values["progress"] = progress

        stmt = (
            update(TrainedModel)
            .where(
                TrainedModel.id == model_id,
                TrainedModel.status == STATUS_TRAINING,
            )
            .values(**values)
        )
        return session.exec(stmt).rowcount == 1
