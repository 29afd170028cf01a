import uuid
from datetime import datetime

from sqlalchemy import UUID as SA_UUID
from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .check_config import CheckConfig


class CheckHistory(Base):
    """
    Check History (探测历史 - 只追加)
    """
    __tablename__ = "check_history"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    config_id: Mapped[uuid.UUID] = mapped_column(
        SA_UUID(as_uuid=True),
        ForeignKey("check_configs.id", ondelete="CASCADE"),
        nullable=False,
        comment="所属配置 ID",
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, comment="探测状态")
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True, comment="应用层探测耗时(ms)")
    ping_latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True, comment="网络层 ping 耗时(ms)")
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, comment="探测时间")
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    config: Mapped[CheckConfig] = relationship(lazy="joined")

    __table_args__ = (
        Index("idx_history_config_checked_at", "config_id", "checked_at"),
        Index("idx_history_checked_at", "checked_at"),
    )

    def __repr__(self) -> str:
        return f"<CheckHistory(config_id={self.config_id}, status={self.status}, checked_at={self.checked_at})>"
