from __future__ import annotations

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from formbridge.db.base import Base
from formbridge.models.mixins import TimestampMixin


class IntegrationGlobalSettings(TimestampMixin, Base):
    __tablename__ = "integration_global_settings"

    integration_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class FormIntegrationSettings(TimestampMixin, Base):
    __tablename__ = "form_integration_settings"

    form_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    integration_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
