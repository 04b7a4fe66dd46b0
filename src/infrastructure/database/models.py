"""SQLAlchemy Models for the asset store."""

from typing import Any, Dict

from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Float,
    Index,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func

from domain.asset_models import Asset


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class AssetRecord(Base):
    """Authoritative asset row."""

    __tablename__ = "assets"

    id = Column(String(255), primary_key=True)
    organisation_id = Column(String(255), nullable=False, index=True)
    name = Column(String(500), nullable=False, default="")
    asset_number = Column(String(255), default="")
    asset_type = Column(String(100), nullable=False, index=True)
    current_value = Column(Float, default=0.0)
    priority = Column(String(50), default="MEDIUM")
    condition = Column(String(100), default="Unknown")
    status = Column(String(50), default="ACTIVE")
    state = Column(String(255))
    suburb = Column(String(255))
    address = Column(String(500))
    tags = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_assets_org_type", "organisation_id", "asset_type"),
    )

    def to_domain(self) -> Asset:
        """Convert to the domain record."""
        return Asset(
            id=self.id,
            organisation_id=self.organisation_id,
            name=self.name or "",
            asset_number=self.asset_number or "",
            asset_type=self.asset_type,
            current_value=float(self.current_value or 0.0),
            priority=self.priority or "MEDIUM",
            condition=self.condition or "Unknown",
            status=self.status or "ACTIVE",
            state=self.state,
            suburb=self.suburb,
            address=self.address,
            tags=list(self.tags or []),
            is_active=bool(self.is_active),
        )

    @classmethod
    def from_domain(cls, asset: Asset) -> "AssetRecord":
        return cls(
            id=asset.id,
            organisation_id=asset.organisation_id,
            name=asset.name,
            asset_number=asset.asset_number,
            asset_type=asset.asset_type,
            current_value=asset.current_value,
            priority=asset.priority,
            condition=asset.condition,
            status=asset.status,
            state=asset.state,
            suburb=asset.suburb,
            address=asset.address,
            tags=list(asset.tags),
            is_active=asset.is_active,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = self.to_domain().to_dict()
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data
