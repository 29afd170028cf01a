from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpdatedAtMixin, UUIDPrimaryKeyMixin


class CheckConfig(Base, UUIDPrimaryKeyMixin, UpdatedAtMixin):
    """
    Check Config (监控端点配置)
    每行对应一个被探测的模型端点
    """
    __tablename__ = "check_configs"

    name: Mapped[str] = mapped_column(String(128), nullable=False, comment="展示名称")
    type: Mapped[str] = mapped_column(String(32), nullable=False, comment="Provider 类型: openai/anthropic/gemini")
    model: Mapped[str] = mapped_column(String(128), nullable=False, comment="模型标识")
    endpoint: Mapped[str | None] = mapped_column(String(512), nullable=True, comment="端点地址，留空使用类型默认值")
    api_key: Mapped[str | None] = mapped_column(Text, nullable=True, comment="探测使用的 API Key")
    group_name: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True, comment="分组名称")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    is_maintenance: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false", comment="维护模式：不探测，展示占位"
    )

    def __repr__(self) -> str:
        return f"<CheckConfig(id={self.id}, name={self.name}, type={self.type})>"
