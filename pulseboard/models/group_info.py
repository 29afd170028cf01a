from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpdatedAtMixin, UUIDPrimaryKeyMixin


class GroupInfo(Base, UUIDPrimaryKeyMixin, UpdatedAtMixin):
    """分组元数据（官网链接、标签）"""
    __tablename__ = "group_info"

    group_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    website_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
