"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines the data contracts shared across packages:
- Parsed leaf blocks and normalized leaf records
- Legacy (V1) listing items as served by the old API
- Fix-up file entries (direct-URL subjects, lab subject aliases)
- Scraped published-result records
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class LeafShape(str, Enum):
    """
    Wire shape of leaf-level compat responses.

    Two generations of the legacy API exist and they are mutually
    incompatible, so one shape is chosen per deployment.
    """

    PAIR = "pair"  # {"title": ..., "url": ...}
    TEXT = "text"  # {"text": "🔷 {title} -\n\n{url}"}


class ContentKind(str, Enum):
    """Canonical collections a leaf record can be written to."""

    NOTE = "note"
    LAB_REPORT = "lab_report"
    QUESTION_BANK = "question_bank"
    ROUTINE = "routine"
    RESULT = "result"


# ─────────────────────────────────────────────────────────────────────────────
# Leaf Records
# ─────────────────────────────────────────────────────────────────────────────


class ParsedBlock(BaseModel):
    """Title and URL split out of one legacy text block."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str


class LeafRecord(BaseModel):
    """
    A leaf item ready for insertion.

    Every legacy leaf form (text block, bare string, button pair, button
    template) normalizes to this shape.
    """

    title: str
    url: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    def metadata_or_none(self) -> Optional[dict[str, Any]]:
        """Empty metadata is stored as NULL, matching the legacy import."""
        return dict(self.metadata) if self.metadata else None


# ─────────────────────────────────────────────────────────────────────────────
# Legacy Listing Items
# ─────────────────────────────────────────────────────────────────────────────


class LegacySubjectItem(BaseModel):
    """Entry of a legacy subject listing: either a route or a direct URL."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sub_name: str = Field(default="Unknown", alias="subName")
    route: Optional[str] = None
    url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def fallback_name(cls, data: Any) -> Any:
        # A few early listings used "name" instead of "subName"
        if isinstance(data, dict) and not data.get("subName") and data.get("name"):
            return {**data, "subName": data["name"]}
        return data

    @property
    def is_direct(self) -> bool:
        """Direct links have a URL and no nested route."""
        return bool(self.url) and not self.route


class LegacyTopicItem(BaseModel):
    """Entry of a legacy topic listing."""

    model_config = ConfigDict(extra="ignore")

    topic: str = ""
    route: Optional[str] = None
    url: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Fix-up File Entries
# ─────────────────────────────────────────────────────────────────────────────


class DirectUrlSubject(BaseModel):
    """A subject that legacy exposed as a terminal link."""

    model_config = ConfigDict(populate_by_name=True)

    sub_name: str = Field(alias="subName")
    url: str
    sort_order: int = Field(default=1, ge=1, alias="sortOrder")


class LabSubjectAlias(BaseModel):
    """Maps a stored lab subject slug to its legacy route slug and label."""

    model_config = ConfigDict(populate_by_name=True)

    db_slug: str = Field(alias="dbSlug")
    display_name: str = Field(alias="displayName")
    v1_route_slug: Optional[str] = Field(default=None, alias="v1RouteSlug")

    def to_metadata(self) -> dict[str, str]:
        """Camel-cased entry stored in ``Level.meta['labSubjects']``."""
        return {
            "dbSlug": self.db_slug,
            "displayName": self.display_name,
            "v1RouteSlug": self.v1_route_slug or self.db_slug,
        }


class CompatFixups(BaseModel):
    """Contents of config/compat_fixups.yaml, keyed by level slug."""

    direct_url_subjects: dict[str, list[DirectUrlSubject]] = Field(default_factory=dict)
    lab_subjects: dict[str, list[LabSubjectAlias]] = Field(default_factory=dict)


# ─────────────────────────────────────────────────────────────────────────────
# Scraped Results
# ─────────────────────────────────────────────────────────────────────────────


class ScrapedResult(BaseModel):
    """One published-result link, freshest first."""

    href: str
    content: str
    date: str = ""
