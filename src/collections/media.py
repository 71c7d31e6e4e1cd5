"""Media records: uploaded file metadata referenced by other collections."""

import uuid
from collections.abc import Callable
from typing import Annotated

from pydantic import AnyUrl, BaseModel as Schema, Field, UrlConstraints
from sqlalchemy import BigInteger, String
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.constants import (
    TOPIC_ACTION_CREATE,
    TOPIC_ACTION_DELETE,
    TOPIC_ACTION_UPDATE,
)
from src.infrastructure.database.base import BaseModel
from src.infrastructure.database.repository import CollectionManager
from src.infrastructure.messaging.notifier import ChangeNotifier, topic_builder

MEDIA_RESOURCE = "media"

type DownloadUrlSigner = Callable[[Media], str]
type MediaCollection = CollectionManager[Media, MediaResponse, MediaRequest]


class Media(BaseModel):
    """Stored file metadata and upload progress."""

    __tablename__ = "media"

    file_name: Mapped[str] = mapped_column(String(2048), default="")
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    file_type: Mapped[str] = mapped_column(String(50), default="")
    storage_key: Mapped[str] = mapped_column(String(2048), default="")
    url: Mapped[str] = mapped_column(String(2048), default="")
    key: Mapped[str] = mapped_column(String(2048), default="")
    bucket_name: Mapped[str] = mapped_column(String(2048), default="")
    status: Mapped[str] = mapped_column(
        String(50), default="pending", server_default="pending"
    )
    progress: Mapped[int] = mapped_column(BigInteger, default=0)


class MediaResponse(Schema):
    id: uuid.UUID
    created_at: str
    updated_at: str
    file_name: str
    file_size: int
    file_type: str
    storage_key: str
    url: str
    key: str
    download_url: str
    bucket_name: str
    status: str
    progress: int


class MediaRequest(Schema):
    id: uuid.UUID | None = None
    file_name: str = Field(min_length=1, max_length=255)
    file_size: int = Field(ge=1)
    file_type: str = Field(min_length=1, max_length=50)
    storage_key: str = Field(min_length=1, max_length=255)
    url: Annotated[AnyUrl, UrlConstraints(max_length=255)]
    key: str = Field(default="", max_length=255)
    bucket_name: str = Field(default="", max_length=255)
    progress: int = Field(default=0, ge=0, le=100)


def media_resource(
    download_url: DownloadUrlSigner | None = None,
) -> Callable[[Media], MediaResponse]:
    """Build the media response mapper.

    Args:
        download_url: Produces a temporary download link for a record. When
            absent, or when it fails, ``download_url`` is empty.
    """

    def to_response(media: Media) -> MediaResponse:
        link = ""
        if download_url is not None:
            try:
                link = download_url(media)
            except Exception:  # noqa: BLE001 - a missing link never hides the record
                link = ""
        return MediaResponse(
            id=media.id,
            created_at=media.created_at.isoformat(),
            updated_at=media.updated_at.isoformat(),
            file_name=media.file_name,
            file_size=media.file_size,
            file_type=media.file_type,
            storage_key=media.storage_key,
            url=media.url,
            key=media.key,
            download_url=link,
            bucket_name=media.bucket_name,
            status=media.status,
            progress=media.progress,
        )

    return to_response


def media_collection(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: ChangeNotifier | None = None,
    *,
    download_url: DownloadUrlSigner | None = None,
) -> MediaCollection:
    """Create the media collection manager."""
    return CollectionManager(
        session_factory,
        Media,
        resource=media_resource(download_url),
        request_model=MediaRequest,
        created=topic_builder(MEDIA_RESOURCE, TOPIC_ACTION_CREATE),
        updated=topic_builder(MEDIA_RESOURCE, TOPIC_ACTION_UPDATE),
        deleted=topic_builder(MEDIA_RESOURCE, TOPIC_ACTION_DELETE),
        notifier=notifier,
    )
