"""
SQLAlchemy ORM Models for tvcast

This module defines the database models for channels and programmes.
"""
from datetime import datetime, timezone
from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Channel(Base):
    """Channel merged from the guide and the playlist"""
    __tablename__ = "channels"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    tvg_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    channel_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    logo_url: Mapped[str] = mapped_column(String, nullable=False, default="")
    group_title: Mapped[str] = mapped_column(String, nullable=False, default="")
    country: Mapped[str] = mapped_column(String, nullable=False, default="")
    stream_url: Mapped[str] = mapped_column(String, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Channel(key={self.key}, display_name={self.display_name})>"


class Programme(Base):
    """Guide programme; channel_id is not enforced against channels"""
    __tablename__ = "programmes"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    start: Mapped[str] = mapped_column(String, nullable=False)
    stop: Mapped[str] = mapped_column(String, nullable=False)
    start_timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    stop_timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String, nullable=False, default="")
    subtitle: Mapped[str | None] = mapped_column(String, nullable=True)
    episode_num: Mapped[str | None] = mapped_column(String, nullable=True)
    season: Mapped[int | None] = mapped_column(Integer, nullable=True)
    episode: Mapped[int | None] = mapped_column(Integer, nullable=True)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    image: Mapped[str | None] = mapped_column(String, nullable=True)
    air_date: Mapped[str | None] = mapped_column(String, nullable=True)
    previously_shown: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("idx_programmes_channel_time", "channel_id", "start_timestamp"),
        Index("idx_programmes_stop", "stop_timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Programme(id={self.id}, title={self.title}, channel={self.channel_id})>"
