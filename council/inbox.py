"""Inbox of queued council questions: scan, parse frontmatter, archive."""

import shutil
from datetime import datetime
from pathlib import Path

import frontmatter

_BOOL_TRUE = {"true", "yes", "1", "on"}


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, oldest first."""
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a queued question with optional YAML frontmatter.

    Returns:
        (question, options) where options may hold ``agents`` (list of ids),
        ``locale`` (str) and ``quick`` (bool). Unknown keys are dropped.
    """
    post = frontmatter.load(str(file_path))
    question = post.content.strip()
    meta = post.metadata
    options: dict = {}

    agents = meta.get("agents")
    if isinstance(agents, str):
        options["agents"] = [a.strip() for a in agents.split(",") if a.strip()]
    elif isinstance(agents, list):
        options["agents"] = [str(a) for a in agents]

    if meta.get("locale"):
        options["locale"] = str(meta["locale"])

    quick = meta.get("quick")
    if isinstance(quick, bool):
        options["quick"] = quick
    elif quick is not None:
        options["quick"] = str(quick).strip().lower() in _BOOL_TRUE

    return question, options


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix, ``FAILED_`` first on failure."""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
