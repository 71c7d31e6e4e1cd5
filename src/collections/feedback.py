"""Feedback records submitted by users, optionally with an attached media file."""

import uuid
from typing import Literal

from pydantic import BaseModel as Schema, ConfigDict, EmailStr, Field
from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.collections.media import Media, MediaCollection, MediaResponse
from src.infrastructure.constants import (
    TOPIC_ACTION_CREATE,
    TOPIC_ACTION_DELETE,
    TOPIC_ACTION_UPDATE,
)
from src.infrastructure.database.base import BaseModel, utcnow
from src.infrastructure.database.repository import CollectionManager
from src.infrastructure.messaging.notifier import ChangeNotifier, topic_builder

FEEDBACK_RESOURCE = "feedback"
FEEDBACK_PRELOADS = ("media",)

type FeedbackType = Literal["general", "bug", "feature"]
type FeedbackCollection = CollectionManager[Feedback, FeedbackResponse, FeedbackRequest]


class Feedback(BaseModel):
    """A piece of user feedback."""

    __tablename__ = "feedback"

    email: Mapped[str] = mapped_column(String(255), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    feedback_type: Mapped[str] = mapped_column(
        String(50), default="general", server_default="general"
    )
    media_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("media.id", ondelete="SET NULL"), index=True
    )
    media: Mapped[Media | None] = relationship()


class FeedbackResponse(Schema):
    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID
    email: str
    description: str
    feedback_type: str
    media_id: uuid.UUID | None
    media: MediaResponse | None = None
    created_at: str = Field(serialization_alias="createdAt")
    updated_at: str = Field(serialization_alias="updatedAt")


class FeedbackRequest(Schema):
    id: uuid.UUID | None = None
    email: EmailStr
    description: str = Field(min_length=5, max_length=2000)
    feedback_type: FeedbackType
    media_id: uuid.UUID | None = None


def feedback_from_request(request: FeedbackRequest) -> Feedback:
    """Build an unsaved record from a validated request."""
    return Feedback(
        id=request.id,
        email=request.email,
        description=request.description,
        feedback_type=request.feedback_type,
        media_id=request.media_id,
    )


def apply_feedback_request(record: Feedback, request: FeedbackRequest) -> Feedback:
    """Overwrite the editable fields of ``record`` with ``request``."""
    record.email = request.email
    record.description = request.description
    record.feedback_type = request.feedback_type
    record.media_id = request.media_id
    record.updated_at = utcnow()
    return record


def feedback_collection(
    session_factory: async_sessionmaker[AsyncSession],
    media: MediaCollection,
    notifier: ChangeNotifier | None = None,
) -> FeedbackCollection:
    """Create the feedback collection manager.

    Responses embed the attached media through the media collection's mapper,
    so ``media`` is always preloaded.
    """

    def to_response(feedback: Feedback) -> FeedbackResponse:
        return FeedbackResponse(
            id=feedback.id,
            email=feedback.email,
            description=feedback.description,
            feedback_type=feedback.feedback_type,
            media_id=feedback.media_id,
            media=media.to_model(feedback.media),
            created_at=feedback.created_at.isoformat(),
            updated_at=feedback.updated_at.isoformat(),
        )

    return CollectionManager(
        session_factory,
        Feedback,
        resource=to_response,
        request_model=FeedbackRequest,
        created=topic_builder(FEEDBACK_RESOURCE, TOPIC_ACTION_CREATE),
        updated=topic_builder(FEEDBACK_RESOURCE, TOPIC_ACTION_UPDATE),
        deleted=topic_builder(FEEDBACK_RESOURCE, TOPIC_ACTION_DELETE),
        notifier=notifier,
        preloads=FEEDBACK_PRELOADS,
    )
