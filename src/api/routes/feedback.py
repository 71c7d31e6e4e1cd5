"""Feedback HTTP endpoints.

Request bodies are bound through the collection's own validation, so a
malformed or invalid payload is answered with 400 like any other
``ValidationError``.
"""

import uuid

from fastapi import APIRouter, Request, Response, status

from src.api.dependencies import FeedbackCollectionDep
from src.collections.feedback import (
    FeedbackResponse,
    apply_feedback_request,
    feedback_from_request,
)
from src.infrastructure.database.dependencies import DatabaseSession

router = APIRouter(prefix="/feedback", tags=["feedback"])


@router.get("", response_model=list[FeedbackResponse])
async def list_feedback(collection: FeedbackCollectionDep) -> list[FeedbackResponse]:
    """List all feedback, most recently updated first."""
    return await collection.list_raw()


@router.get("/{feedback_id}", response_model=FeedbackResponse)
async def get_feedback(
    feedback_id: uuid.UUID, collection: FeedbackCollectionDep
) -> FeedbackResponse | None:
    """Return one piece of feedback with its media.

    Raises:
        NotFoundError: If no feedback has ``feedback_id``.
    """
    return await collection.get_by_id_raw(feedback_id)


@router.post(
    "", status_code=status.HTTP_201_CREATED, response_model=FeedbackResponse
)
async def create_feedback(
    request: Request, collection: FeedbackCollectionDep
) -> FeedbackResponse | None:
    """Submit new feedback."""
    payload = await collection.validate(request)
    record = await collection.create(feedback_from_request(payload))
    return collection.to_model(record)


@router.put("/{feedback_id}", response_model=FeedbackResponse)
async def update_feedback(
    feedback_id: uuid.UUID,
    request: Request,
    collection: FeedbackCollectionDep,
    db: DatabaseSession,
) -> FeedbackResponse | None:
    """Replace the editable fields of existing feedback.

    The read and the write share one transaction.
    """
    payload = await collection.validate(request)
    record = await collection.get_by_id(feedback_id, tx=db)
    apply_feedback_request(record, payload)
    await collection.update(record, tx=db)
    return collection.to_model(record)


@router.delete("/{feedback_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_feedback(
    feedback_id: uuid.UUID, collection: FeedbackCollectionDep
) -> Response:
    """Delete feedback; its change event carries the last stored state."""
    await collection.delete_by_id(feedback_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
