from sqlalchemy import select

from pulseboard.models.check_config import CheckConfig

from .base import BaseRepository


class CheckConfigRepository(BaseRepository[CheckConfig]):
    model = CheckConfig

    async def list_enabled(self) -> list[CheckConfig]:
        result = await self.session.execute(
            select(CheckConfig)
            .where(CheckConfig.enabled.is_(True))
            .order_by(CheckConfig.name.asc(), CheckConfig.id.asc())
        )
        return list(result.scalars().all())
