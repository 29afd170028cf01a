from sqlalchemy import select

from pulseboard.models.group_info import GroupInfo

from .base import BaseRepository


class GroupInfoRepository(BaseRepository[GroupInfo]):
    model = GroupInfo

    async def list_all(self) -> list[GroupInfo]:
        result = await self.session.execute(select(GroupInfo).order_by(GroupInfo.group_name.asc()))
        return list(result.scalars().all())
