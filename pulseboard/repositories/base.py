from typing import Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from pulseboard.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """通用异步 Repository 基类

    仓库统一以 `Repo(session)` 的形式初始化，
    这里允许通过子类的 `model` 属性自动注入，必要时也可显式传入。
    """

    model: type[ModelType]  # 子类应覆盖

    def __init__(
        self,
        session: AsyncSession,
        model: type[ModelType] | None = None,
    ):
        self.session = session
        self.model = model or getattr(self, "model", None)
        if self.model is None:
            raise ValueError("model must be provided for BaseRepository")
