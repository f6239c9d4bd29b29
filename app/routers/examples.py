# app/routers/examples.py
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlmodel import Session

from app.database import get_session
from app.dependencies import get_example_service
from app.schemas.headshot import ExampleRead
from app.services.example_service import ExampleService

router = APIRouter(prefix="/examples", tags=["Examples"])


# -------- Public endpoints --------


@router.get("", response_model=list[ExampleRead])
def list_examples(
    session: Session = Depends(get_session),
    service: ExampleService = Depends(get_example_service),
):
    return service.list_examples(session)


@router.get("/{example_id}", response_model=ExampleRead)
def get_example(
    example_id: int,
    session: Session = Depends(get_session),
    service: ExampleService = Depends(get_example_service),
):
    return service.get_example(session, example_id)


@router.get("/{example_id}/image")
def example_image(
    example_id: int,
    session: Session = Depends(get_session),
    service: ExampleService = Depends(get_example_service),
):
    return FileResponse(service.image_path(session, example_id))
