# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Table Registry - Static, dependency-ordered catalog of tables.

The registry is the single source of truth for which tables are dumped
and restored, and in what order. The order is encoded by hand in tiers:

    (a) reference tables with no foreign keys
    (b) tables referencing tier (a) rows
    (c) join/pivot tables referencing (a) and (b)
    (d) auxiliary/metadata tables nothing else references

Dependencies are declared statically as well, so ordering can be checked
without touching a database. Nothing here is inferred at runtime.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Tuple

from sitesnap.exceptions import ConfigurationError


# Table that holds operator credentials. Neither default list touches it; a
# custom registry that restores it still has it protected in production.
AUTH_TABLE = "users"

TIER_REFERENCE: Tuple[str, ...] = (
    "translation_keys",
    "pictures",
    "tags",
    "social_media_links",
    "certifications",
)

TIER_DEPENDENT: Tuple[str, ...] = (
    "blog_categories",
    "content_markdowns",
    "optimized_pictures",
    "custom_emojis",
    "people",
    "videos",
    "technologies",  # icon_picture_id -> pictures
    "technology_experiences",
    "experiences",
    "content_galleries",
    "content_videos",
    "translations",
    "creations",
    "features",
    "screenshots",
    "creation_drafts",
    "creation_draft_features",
    "creation_draft_screenshots",
    "blog_posts",
    "blog_post_drafts",
    "blog_post_contents",
    "blog_post_draft_contents",
)

TIER_PIVOT: Tuple[str, ...] = (
    "creation_technology",
    "creation_person",
    "creation_tag",
    "creation_video",
    "creation_draft_technology",
    "creation_draft_person",
    "creation_draft_tag",
    "creation_draft_video",
    "content_gallery_pictures",
)

TIER_AUXILIARY: Tuple[str, ...] = (
    "user_agent_metadata",
    "ip_address_metadata",
)

# Names used by archives produced before the blog content tables were renamed.
LEGACY_TABLES: Dict[str, str] = {
    "blog_content_markdown": "content_markdowns",
    "blog_content_galleries": "content_galleries",
    "blog_content_videos": "content_videos",
    "blog_content_gallery_pictures": "content_gallery_pictures",
}

DEPENDENCIES: Dict[str, FrozenSet[str]] = {
    "blog_categories": frozenset({"translation_keys"}),
    "content_markdowns": frozenset({"translation_keys"}),
    "blog_content_markdown": frozenset({"translation_keys"}),
    "optimized_pictures": frozenset({"pictures"}),
    "custom_emojis": frozenset({"pictures"}),
    "people": frozenset({"pictures"}),
    "videos": frozenset({"pictures"}),
    "technologies": frozenset({"translation_keys", "pictures"}),
    "technology_experiences": frozenset({"technologies", "translation_keys"}),
    "experiences": frozenset({"translation_keys", "pictures"}),
    "content_videos": frozenset({"videos"}),
    "blog_content_videos": frozenset({"videos"}),
    "translations": frozenset({"translation_keys"}),
    "creations": frozenset({"pictures", "translation_keys"}),
    "features": frozenset({"creations", "translation_keys", "pictures"}),
    "screenshots": frozenset({"creations", "pictures", "translation_keys"}),
    "creation_drafts": frozenset({"creations", "pictures", "translation_keys"}),
    "creation_draft_features": frozenset({"creation_drafts", "translation_keys", "pictures"}),
    "creation_draft_screenshots": frozenset({"creation_drafts", "pictures", "translation_keys"}),
    "blog_posts": frozenset({"translation_keys", "blog_categories", "pictures"}),
    "blog_post_drafts": frozenset({"blog_posts", "blog_categories", "pictures"}),
    "blog_post_contents": frozenset({"blog_posts"}),
    "blog_post_draft_contents": frozenset({"blog_post_drafts"}),
    "creation_technology": frozenset({"creations", "technologies"}),
    "creation_person": frozenset({"creations", "people"}),
    "creation_tag": frozenset({"creations", "tags"}),
    "creation_video": frozenset({"creations", "videos"}),
    "creation_draft_technology": frozenset({"creation_drafts", "technologies"}),
    "creation_draft_person": frozenset({"creation_drafts", "people"}),
    "creation_draft_tag": frozenset({"creation_drafts", "tags"}),
    "creation_draft_video": frozenset({"creation_drafts", "videos"}),
    "content_gallery_pictures": frozenset({"content_galleries", "pictures"}),
    "blog_content_gallery_pictures": frozenset({"blog_content_galleries", "pictures"}),
}


@dataclass(frozen=True)
class TableRegistry:
    """
    Immutable, ordered table catalog.

    export_tables and import_tables are kept independently; import_tables
    is expected to be a superset so archives from older schemas still load.
    """

    export_tables: Tuple[str, ...]
    import_tables: Tuple[str, ...]
    dependencies: Dict[str, FrozenSet[str]] = field(default_factory=dict, hash=False)

    def depends_on(self, table: str) -> FrozenSet[str]:
        """Tables that must be loaded before `table`."""
        return self.dependencies.get(table, frozenset())

    def clear_order(self) -> Tuple[str, ...]:
        """Import order reversed: dependents are emptied before what they reference."""
        return tuple(reversed(self.import_tables))


def check_order(
    order: Iterable[str],
    dependencies: Dict[str, FrozenSet[str]],
) -> List[str]:
    """
    Report every dependency the given order violates.

    A dependency on a table that is not part of the order is ignored,
    since such tables are skipped at runtime anyway.

    Returns:
        List of human-readable violations (empty when the order is valid)
    """
    order = list(order)
    positions = {table: index for index, table in enumerate(order)}
    violations: List[str] = []

    seen: set = set()
    for table in order:
        if table in seen:
            violations.append(f"{table} is listed more than once")
        seen.add(table)

    for index, table in enumerate(order):
        for referenced in sorted(dependencies.get(table, ())):
            position = positions.get(referenced)
            if position is not None and position > index:
                violations.append(f"{table} is ordered before {referenced}, which it references")

    return violations


def build_registry(
    export_tables: Iterable[str],
    import_tables: Iterable[str],
    dependencies: Dict[str, FrozenSet[str]] | None = None,
) -> TableRegistry:
    """
    Build and validate a TableRegistry.

    Raises:
        ConfigurationError: If either list violates the dependency map, or
            the import list does not cover every exported table
    """
    deps = dict(DEPENDENCIES if dependencies is None else dependencies)
    registry = TableRegistry(
        export_tables=tuple(export_tables),
        import_tables=tuple(import_tables),
        dependencies=deps,
    )

    errors: List[str] = []
    errors.extend(f"export: {v}" for v in check_order(registry.export_tables, deps))
    errors.extend(f"import: {v}" for v in check_order(registry.import_tables, deps))

    missing = [t for t in registry.export_tables if t not in registry.import_tables]
    if missing:
        errors.append(f"import list does not cover exported tables: {missing}")

    if errors:
        raise ConfigurationError(
            "Table registry validation failed",
            details={"errors": errors},
        )

    return registry


def default_registry() -> TableRegistry:
    """
    The website's table catalog.

    Export covers every content table. Import additionally knows the legacy
    blog content names. Operator accounts are left alone in both directions.
    """
    export_tables = TIER_REFERENCE + TIER_DEPENDENT + TIER_PIVOT + TIER_AUXILIARY

    import_tables: List[str] = list(TIER_REFERENCE)
    for table in TIER_DEPENDENT + TIER_PIVOT:
        import_tables.append(table)
        # Legacy names load right after their current counterpart
        import_tables.extend(
            legacy for legacy, current in LEGACY_TABLES.items() if current == table
        )
    import_tables.extend(TIER_AUXILIARY)

    return build_registry(export_tables, import_tables, DEPENDENCIES)
