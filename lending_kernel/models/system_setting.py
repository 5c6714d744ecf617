"""
Module: lending_kernel.models.system_setting
Responsibility: ORM persistence for operator-editable configuration values
    (rates and limits) read by the settings-backed rate provider.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lending_kernel.db.base import Base


class SystemSetting(Base):
    """A single key -> string value setting, e.g. rates.penalty_rate = "3"."""

    __tablename__ = "system_settings"

    __table_args__ = (UniqueConstraint("key", name="uq_system_setting_key"),)

    key: Mapped[str] = mapped_column(String(100), nullable=False)

    value: Mapped[str] = mapped_column(String(4000), nullable=False)

    value_type: Mapped[str] = mapped_column(String(20), nullable=False, default="number")

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return f"<SystemSetting {self.key}={self.value}>"
