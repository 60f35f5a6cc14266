from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .models import Video


class VideoRepository:
    """The metadata-store boundary: fetch by id, write back by value."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, video_id: uuid.UUID) -> Optional[Video]:
        return await self.session.get(Video, str(video_id))

    async def create(self, *, user_id: uuid.UUID, title: str, description: Optional[str] = None) -> Video:
        video = Video(id=str(uuid.uuid4()), user_id=str(user_id), title=title, description=description)
        self.session.add(video)
        await self.session.commit()
        await self.session.refresh(video)
        return video

    async def update(self, video: Video) -> Video:
        merged = await self.session.merge(video)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(merged)
        return merged


__all__ = ["VideoRepository"]
