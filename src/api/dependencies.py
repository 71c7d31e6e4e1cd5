"""FastAPI dependencies providing the application's collections.

Collections are built once per process from the global session factory and
change notifier. ``reset_collections`` drops them so the next request builds
fresh ones (after shutdown, or between tests).
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from src.collections.feedback import (
    Feedback,
    FeedbackRequest,
    FeedbackResponse,
    feedback_collection,
)
from src.collections.media import Media, MediaRequest, MediaResponse, media_collection
from src.infrastructure.database.repository import CollectionManager
from src.infrastructure.database.session import get_session_factory
from src.infrastructure.messaging.notifier import get_notifier


@lru_cache(maxsize=1)
def get_media_collection() -> CollectionManager[Media, MediaResponse, MediaRequest]:
    return media_collection(get_session_factory(), get_notifier())


@lru_cache(maxsize=1)
def get_feedback_collection() -> CollectionManager[
    Feedback, FeedbackResponse, FeedbackRequest
]:
    return feedback_collection(
        get_session_factory(), get_media_collection(), get_notifier()
    )


def reset_collections() -> None:
    """Forget the cached collections."""
    get_feedback_collection.cache_clear()
    get_media_collection.cache_clear()


FeedbackCollectionDep = Annotated[
    CollectionManager[Feedback, FeedbackResponse, FeedbackRequest],
    Depends(get_feedback_collection),
]
