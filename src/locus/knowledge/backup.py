"""JSON export and import of the knowledge base (files + links).

Embeddings are not exported; they are rebuilt on import when ``reindex`` is
set. Folders are implied by file paths.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import structlog

from locus.db.models import KnowledgeFile, OwnerKind, Relationship, normalize_path, utc_now
from locus.db.repository import Repository
from locus.graph.links import LinkStore
from locus.knowledge.files import KnowledgeBase

log = structlog.get_logger()

BACKUP_VERSION = 1


@dataclass
class ImportResult:
    files_imported: int = 0
    files_skipped: int = 0
    links_imported: int = 0
    links_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


# ------------------------------------------------------------------
# Export
# ------------------------------------------------------------------


def export_backup(repo: Repository) -> dict:
    """Snapshot every knowledge file and link as a plain dict."""
    files = [
        {
            "path": f.path,
            "content": f.content,
            "created_at": f.created_at,
            "updated_at": f.updated_at,
        }
        for f in repo.list_files("/")
    ]
    links = [
        {
            "source": link.source,
            "target": link.target,
            "relationship": link.relationship.value,
            "bidirectional": link.bidirectional,
            "notes": link.notes,
        }
        for link in repo.all_links()
    ]
    folders = {
        "/".join(f["path"].split("/")[:i])
        for f in files
        for i in range(2, f["path"].count("/") + 1)
    }
    return {
        "version": BACKUP_VERSION,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "files": files,
        "links": links,
        "stats": {"files": len(files), "folders": len(folders), "links": len(links)},
    }


def write_backup(repo: Repository, path: Path) -> dict:
    data = export_backup(repo)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    log.info("Backup written", path=str(path), **data["stats"])
    return data


# ------------------------------------------------------------------
# Import
# ------------------------------------------------------------------


def parse_backup(raw: str) -> dict:
    """Parse and validate backup JSON.

    Raises:
        ValueError: On malformed JSON, an unsupported version, or entries
            missing required fields.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON format: {exc}") from exc
    _check_structure(data)
    return data


def read_backup(path: Path) -> dict:
    return parse_backup(path.read_text(encoding="utf-8"))


def _check_structure(data: object) -> None:
    if not isinstance(data, dict):
        raise ValueError("Backup must be a JSON object")
    if data.get("version") != BACKUP_VERSION:
        raise ValueError(f"Unsupported backup version: {data.get('version')}")
    if not isinstance(data.get("files"), list):
        raise ValueError("Backup must contain a 'files' list")
    if not isinstance(data.get("links"), list):
        raise ValueError("Backup must contain a 'links' list")
    for f in data["files"]:
        if not isinstance(f.get("path"), str) or not isinstance(f.get("content"), str):
            raise ValueError("Each file must have 'path' and 'content' strings")
    valid = {r.value for r in Relationship}
    for link in data["links"]:
        if not isinstance(link.get("source"), str) or not isinstance(link.get("target"), str):
            raise ValueError("Each link must have 'source' and 'target' strings")
        if link.get("relationship") not in valid:
            raise ValueError(f"Invalid relationship type: {link.get('relationship')}")


def import_backup(
    kb: KnowledgeBase,
    links: LinkStore,
    data: dict,
    *,
    overwrite: bool = False,
    reindex: bool = True,
) -> ImportResult:
    """Restore files, then links, from an exported backup.

    Existing files are skipped unless *overwrite*. Links go through
    ``create_link`` so a link to a missing file is counted as skipped.

    Raises:
        ValueError: If *data* is not a supported backup.
    """
    _check_structure(data)
    result = ImportResult()
    now = utc_now()

    for entry in data["files"]:
        path = normalize_path(entry["path"])
        try:
            if path == "/":
                raise ValueError("file path is empty")
            if kb.exists(path) and not overwrite:
                result.files_skipped += 1
                continue
            kb.repo.restore_file(
                KnowledgeFile(
                    path=path,
                    content=entry["content"],
                    created_at=entry.get("created_at") or now,
                    updated_at=entry.get("updated_at") or now,
                )
            )
            if reindex:
                kb.background.submit(OwnerKind.KNOWLEDGE, path, entry["content"])
            result.files_imported += 1
        except (ValueError, sqlite3.Error) as exc:
            result.errors.append(f"Failed to import {entry['path']}: {exc}")

    for entry in data["links"]:
        created = links.create_link(
            entry["source"],
            entry["target"],
            entry["relationship"],
            bidirectional=bool(entry.get("bidirectional", False)),
            notes=entry.get("notes"),
        )
        if created.success:
            result.links_imported += 1
        else:
            result.links_skipped += 1
            log.debug("Skipped link", source=entry["source"], target=entry["target"], reason=created.error)

    log.info(
        "Backup imported",
        files_imported=result.files_imported,
        files_skipped=result.files_skipped,
        links_imported=result.links_imported,
        links_skipped=result.links_skipped,
        errors=len(result.errors),
    )
    return result
