"""Knowledge-graph link store.

Links are typed, directed edges between knowledge files, keyed by
``source#target#relationship`` so each ordered pair carries at most one edge
per relationship. Re-creating a link updates it in place and keeps its
``created_at``.

Validation failures never raise out of this module: they come back as
``LinkResult(success=False, error=...)`` with a short reason string.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import structlog

from locus.db.models import KnowledgeLink, Relationship, normalize_path, utc_now
from locus.db.repository import Repository
from locus.errors import LinkValidationError

log = structlog.get_logger()

# Derived graph layout (positions for a visualiser) stored in the metadata table.
LAYOUT_CACHE_KEY = "graph_layout"


def link_id(source: str, target: str, relationship: Relationship) -> str:
    return f"{source}#{target}#{relationship.value}"


@dataclass
class LinkResult:
    success: bool
    link: KnowledgeLink | None = None
    error: str | None = None
    deleted: bool = False


@dataclass
class FileLinks:
    path: str
    outgoing: list[KnowledgeLink] = field(default_factory=list)
    incoming: list[KnowledgeLink] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outgoing) + len(self.incoming)


@dataclass
class LinkStats:
    total: int
    by_relationship: dict[Relationship, int]


class LinkStore:
    """CRUD over knowledge links, validated against the file store in *repo*."""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def create_link(
        self,
        source: str,
        target: str,
        relationship: Relationship | str,
        *,
        bidirectional: bool = False,
        notes: str | None = None,
    ) -> LinkResult:
        """Create or update the ``(source, target, relationship)`` edge.

        Both files must exist and differ. On update the original
        ``created_at`` is kept.
        """
        try:
            src, dst, rel = self._validate(source, target, relationship)
        except LinkValidationError as exc:
            return LinkResult(success=False, error=str(exc))

        now = utc_now()
        lid = link_id(src, dst, rel)
        existing = self.repo.get_link(lid)
        link = KnowledgeLink(
            id=lid,
            source=src,
            target=dst,
            relationship=rel,
            bidirectional=bidirectional,
            notes=notes,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.repo.upsert_link(link)
        self._invalidate_layout()
        log.debug("Link updated" if existing else "Link created", link_id=lid)
        return LinkResult(success=True, link=link)

    def delete_link(
        self, source: str, target: str, relationship: Relationship | str
    ) -> LinkResult:
        """Delete one exact triple; ``deleted`` says whether it existed."""
        try:
            rel = _coerce_relationship(relationship)
        except LinkValidationError as exc:
            return LinkResult(success=False, error=str(exc))
        deleted = self.repo.delete_link(
            link_id(normalize_path(source), normalize_path(target), rel)
        )
        if deleted:
            self._invalidate_layout()
        return LinkResult(success=True, deleted=deleted)

    def get_links_for_file(self, path: str) -> FileLinks:
        p = normalize_path(path)
        return FileLinks(path=p, outgoing=self.repo.links_from(p), incoming=self.repo.links_to(p))

    def get_all_links(self) -> list[KnowledgeLink]:
        return self.repo.all_links()

    def get_links_by_relationship(self, relationship: Relationship | str) -> list[KnowledgeLink]:
        return self.repo.links_by_relationship(_coerce_relationship(relationship))

    def delete_links_for_file(self, path: str) -> int:
        """Cascade: remove every link where *path* is source or target."""
        count = self.repo.delete_links_touching(normalize_path(path))
        if count:
            self._invalidate_layout()
        return count

    def link_stats(self) -> LinkStats:
        counts = self.repo.link_counts()
        by_rel = {rel: counts.get(rel.value, 0) for rel in Relationship}
        return LinkStats(total=sum(by_rel.values()), by_relationship=by_rel)

    # ------------------------------------------------------------------
    # Layout cache
    # ------------------------------------------------------------------

    def cache_layout(self, layout: dict) -> None:
        self.repo.set_meta(LAYOUT_CACHE_KEY, json.dumps(layout))

    def cached_layout(self) -> dict | None:
        raw = self.repo.get_meta(LAYOUT_CACHE_KEY)
        return json.loads(raw) if raw else None

    def _invalidate_layout(self) -> None:
        self.repo.delete_meta(LAYOUT_CACHE_KEY)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(
        self, source: str, target: str, relationship: Relationship | str
    ) -> tuple[str, str, Relationship]:
        rel = _coerce_relationship(relationship)
        src = normalize_path(source)
        dst = normalize_path(target)
        if not self.repo.file_exists(src):
            raise LinkValidationError(f"Source file not found: {src}")
        if not self.repo.file_exists(dst):
            raise LinkValidationError(f"Target file not found: {dst}")
        if src == dst:
            raise LinkValidationError("Cannot create a link from a file to itself")
        return src, dst, rel


def _coerce_relationship(value: Relationship | str) -> Relationship:
    if isinstance(value, Relationship):
        return value
    try:
        return Relationship(value)
    except ValueError:
        valid = ", ".join(r.value for r in Relationship)
        raise LinkValidationError(
            f"Invalid relationship '{value}'. Expected one of: {valid}"
        ) from None
