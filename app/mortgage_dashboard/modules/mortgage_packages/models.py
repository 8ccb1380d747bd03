from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from sqlalchemy import Date, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.mortgage_dashboard.constants import DEFAULT_CATEGORY, LINE_BREAK_MARKER
from app.mortgage_dashboard.models import Base
from app.mortgage_dashboard.modules.mortgage_packages.tags import (
    FeatureTag,
    compute_feature_tag,
    parse_feature_tag,
)

ROW_FIELDS = (
    "bank",
    "property_type",
    "category",
    "min_loan_size",
    "package_name",
    "lockin_period",
    "rates",
    "features",
    "subsidies",
    "remarks",
    "last_updated",
    "feature_tag",
)


class MortgagePackageRecord(Base):
    """Table backing the `sql` store backend. Mirrors the hosted `mortgage_packages` table."""

    __tablename__ = "mortgage_packages"
    __table_args__ = (
        Index("idx_mortgage_packages_bank", "bank"),
        Index("idx_mortgage_packages_last_updated", "last_updated"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Required
    bank: Mapped[str] = mapped_column(String(128), nullable=False)
    property_type: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)  # older rows have no category
    min_loan_size: Mapped[float] = mapped_column(Numeric(14, 2), nullable=False)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    lockin_period: Mapped[str] = mapped_column(String(64), nullable=False)
    rates: Mapped[str] = mapped_column(Text, nullable=False)

    # Optional
    features: Mapped[str | None] = mapped_column(Text, nullable=True)
    subsidies: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    feature_tag: Mapped[str | None] = mapped_column(String(32), nullable=True)

    last_updated: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {"id": self.id}
        for name in ROW_FIELDS:
            row[name] = getattr(self, name)
        return row


def _to_number(value: Any) -> int | float:
    if value is None or value == "":
        return 0
    n = float(value)
    return int(n) if n.is_integer() else n


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Hosted API returns ISO strings; timestamps are truncated to the calendar date.
    return date.fromisoformat(str(value)[:10])


def _split_lines(text: str | None) -> list[str]:
    if not text:
        return []
    return [part.strip() for part in text.split(LINE_BREAK_MARKER)]


@dataclass
class MortgagePackage:
    id: str
    bank: str
    property_type: str
    min_loan_size: int | float
    package_name: str
    lockin_period: str
    rates: str
    last_updated: date
    category: str = DEFAULT_CATEGORY
    features: str | None = None
    subsidies: str | None = None
    remarks: str | None = None
    feature_tag: FeatureTag | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MortgagePackage":
        """
        Deserialize a store row. Missing category falls back to Fixed and a missing
        feature tag is derived from the features text, both exactly once here.
        """
        features = row.get("features") or None
        tag = parse_feature_tag(row.get("feature_tag"))
        if tag is None:
            tag = compute_feature_tag(features)
        return cls(
            id=str(row["id"]),
            bank=row.get("bank") or "",
            property_type=row.get("property_type") or "",
            category=row.get("category") or DEFAULT_CATEGORY,
            min_loan_size=_to_number(row.get("min_loan_size")),
            package_name=row.get("package_name") or "",
            lockin_period=row.get("lockin_period") or "",
            rates=row.get("rates") or "",
            features=features,
            subsidies=row.get("subsidies") or None,
            remarks=row.get("remarks") or None,
            last_updated=_to_date(row.get("last_updated")),
            feature_tag=tag,
        )

    @property
    def rate_lines(self) -> list[str]:
        return _split_lines(self.rates)

    @property
    def feature_lines(self) -> list[str]:
        return _split_lines(self.features)
