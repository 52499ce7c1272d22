"""
Fix-up Module - Supplementary pass after migration.
===================================================

Some legacy nodes cannot be recovered from the corpus alone:

- Subjects the old bot exposed as terminal links (no topics beneath them)
- Display names of lab subjects, and the route slug the old API used for
  each stored lab subject slug

Both are listed in ``config/compat_fixups.yaml`` and applied here. The pass
only merges metadata and inserts missing rows; it is safe to run repeatedly.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from notebot_bridge.shared.config import DEFAULT_FIXUPS_FILE, load_yaml_file
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.schemas import CompatFixups, DirectUrlSubject, LabSubjectAlias
from notebot_bridge.shared.utils import merge_metadata, slugify
from notebot_bridge.storage.models import LabReport, Level, Subject, Topic

logger = get_logger(__name__)


@dataclass
class FixupStats:
    """Counts of one fix-up run."""

    subjects_added: int = 0
    subjects_updated: int = 0
    subjects_refused: int = 0
    lab_rows_updated: int = 0
    levels_updated: int = 0
    missing_levels: list[str] = field(default_factory=list)


def load_fixups(path: Optional[Path] = None) -> CompatFixups:
    """
    Load fix-up data from YAML.

    Args:
        path: File to read (default: config/compat_fixups.yaml)

    Returns:
        Parsed fix-ups; empty when the file does not exist
    """
    path = path or DEFAULT_FIXUPS_FILE
    data = load_yaml_file(path)
    if not data:
        logger.warning(f"No fix-up data found at {path}")
    return CompatFixups.model_validate(data)


# ─────────────────────────────────────────────────────────────────────────────
# Direct-URL Subjects
# ─────────────────────────────────────────────────────────────────────────────


def _topic_count(session: Session, subject_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(Topic).where(Topic.subject_id == subject_id)
    ) or 0


def _apply_direct_subject(
    session: Session, level: Level, entry: DirectUrlSubject, stats: FixupStats
) -> None:
    existing = session.scalars(
        select(Subject).where(
            Subject.level_id == level.id, Subject.display_name == entry.sub_name
        )
    ).first()

    if existing is not None:
        if _topic_count(session, existing.id):
            logger.warning(
                f"Subject {entry.sub_name!r} (level {level.slug}) has topics; "
                f"not marking it as a direct link"
            )
            stats.subjects_refused += 1
            return
        existing.meta = merge_metadata(existing.meta, {"directUrl": entry.url})
        stats.subjects_updated += 1
        logger.debug(f"Updated direct link: {entry.sub_name} (level {level.slug})")
        return

    slug = slugify(entry.sub_name, "_")
    clash = session.scalars(
        select(Subject).where(Subject.level_id == level.id, Subject.slug == slug)
    ).first()
    if clash is not None:
        logger.warning(
            f"Slug {slug!r} already used by {clash.display_name!r} (level {level.slug}); "
            f"skipping direct link {entry.sub_name!r}"
        )
        stats.subjects_refused += 1
        return

    session.add(
        Subject(
            level_id=level.id,
            name=slug,
            display_name=entry.sub_name,
            slug=slug,
            sort_order=entry.sort_order,
            meta={"directUrl": entry.url},
        )
    )
    session.flush()
    stats.subjects_added += 1
    logger.debug(f"Added direct link: {entry.sub_name} (level {level.slug})")


# ─────────────────────────────────────────────────────────────────────────────
# Lab Subject Aliases
# ─────────────────────────────────────────────────────────────────────────────


def _apply_lab_aliases(
    session: Session, level: Level, aliases: list[LabSubjectAlias], stats: FixupStats
) -> None:
    for alias in aliases:
        rows = session.scalars(
            select(LabReport).where(
                LabReport.level_id == level.id, LabReport.subject_slug == alias.db_slug
            )
        ).all()
        for row in rows:
            if (row.meta or {}).get("displayName"):
                continue
            row.meta = merge_metadata(
                row.meta,
                {"displayName": alias.display_name, "v1Slug": alias.v1_route_slug or alias.db_slug},
            )
            stats.lab_rows_updated += 1

    level.meta = merge_metadata(
        level.meta, {"labSubjects": [alias.to_metadata() for alias in aliases]}
    )
    stats.levels_updated += 1


def apply_fixups(session: Session, fixups: CompatFixups) -> FixupStats:
    """
    Apply direct-URL subjects and lab subject aliases.

    Args:
        session: Open session; the caller commits
        fixups: Parsed fix-up data

    Returns:
        FixupStats for this run
    """
    stats = FixupStats()
    levels = {lvl.slug: lvl for lvl in session.scalars(select(Level).order_by(Level.sort_order))}

    for level_slug, entries in fixups.direct_url_subjects.items():
        level = levels.get(level_slug)
        if level is None:
            logger.error(f"Level {level_slug} not found, skipping its direct links")
            stats.missing_levels.append(level_slug)
            continue
        for entry in entries:
            _apply_direct_subject(session, level, entry, stats)

    for level_slug, aliases in fixups.lab_subjects.items():
        level = levels.get(level_slug)
        if level is None:
            if level_slug not in stats.missing_levels:
                logger.error(f"Level {level_slug} not found, skipping its lab aliases")
                stats.missing_levels.append(level_slug)
            continue
        _apply_lab_aliases(session, level, aliases, stats)

    session.flush()
    logger.info(
        f"Fix-ups applied: {stats.subjects_added} subjects added, "
        f"{stats.subjects_updated} updated, {stats.subjects_refused} refused, "
        f"{stats.lab_rows_updated} lab rows labelled"
    )
    return stats
