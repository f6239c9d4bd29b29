# app/services/example_service.py
import logging
import os
import shutil

from sqlmodel import Session

from app.core import storage_utils
from app.core.errors import NotFound, ValidationError
from app.models.headshot import ExampleHeadshot
from app.repositories.headshot_repo import HeadshotRepository

logger = logging.getLogger(__name__)


class ExampleService:
    """Public example gallery. Reads are anonymous; promotion is operator-only."""

    def __init__(self, repo: HeadshotRepository):
        self.repo = repo

    def list_examples(self, session: Session) -> list[ExampleHeadshot]:
        return self.repo.list_examples(session)

    def get_example(self, session: Session, example_id: int) -> ExampleHeadshot:
        example = self.repo.get_example(session, example_id)
        if example is None:
            raise NotFound("Example not found")
        return example

    def image_path(self, session: Session, example_id: int) -> str:
        example = self.get_example(session, example_id)
        path = example.file_path
        if not storage_utils.is_within_data_dir(path) or not storage_utils.file_exists(path):
            raise NotFound("Image not found")
        return path

    def promote(self, session: Session, headshot_id: int) -> ExampleHeadshot:
        """
        Copy a generated headshot into the public gallery.

        The image is copied (not moved) so the owner's copy stays intact
        if they later delete their headshot.
        """
        headshot = self.repo.get_by_id(session, headshot_id)
        if headshot is None:
            raise NotFound("Headshot not found")
        if not headshot.file_path or not storage_utils.file_exists(headshot.file_path):
            raise ValidationError("Headshot has no stored image")

        target_dir = storage_utils.data_dir() / storage_utils.EXAMPLES
        target_dir.mkdir(parents=True, exist_ok=True)
        ext = os.path.splitext(headshot.file_path)[1].lstrip(".") or "png"
        target = target_dir / storage_utils.generate_filename(ext)
        shutil.copyfile(headshot.file_path, target)

        example = self.repo.create_example(
            session,
            ExampleHeadshot(
                headshot_id=headshot.id,
                style=headshot.style,
                file_path=str(target),
                image_url=headshot.image_url,
                prompt=headshot.prompt,
            ),
        )
        logger.info("Promoted headshot %s to example %s", headshot_id, example.id)
        return example
