"""Document loader — turns file paths and folders into DocumentInput records.

Text files are read as UTF-8; anything else is carried as base64 and counted
but never inlined into the job input. Folder scans apply an extension list,
a size cap and exclude patterns, and report every skipped path with a reason.
"""

from __future__ import annotations

import base64
import fnmatch
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from gemini_research.models.schemas import DocumentInput
from gemini_research.research.prompts import is_text_mime_type

logger = structlog.get_logger(component="research.documents")

DEFAULT_EXTENSIONS = [
    ".txt", ".md", ".csv", ".json", ".xml", ".html", ".htm",
    ".py", ".js", ".ts", ".java", ".c", ".cpp", ".h",
    ".yaml",
]

# 10 MB
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules",
    ".git",
    ".svn",
    "__pycache__",
    ".DS_Store",
    "Thumbs.db",
    "*.log",
    "*.lock",
]

# Extensions mimetypes does not know everywhere
_EXTRA_TYPES = {
    ".md": "text/markdown",
    ".ts": "text/x-typescript",
    ".yaml": "application/x-yaml",
    ".yml": "application/x-yaml",
    ".toml": "application/toml",
}


@dataclass
class FileFilters:
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    recursive: bool = True


@dataclass
class ScannedFile:
    path: Path
    name: str
    size: int
    mime_type: str


@dataclass
class SkippedFile:
    path: str
    reason: str


@dataclass
class ScanResult:
    files: list[ScannedFile] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)
    total_size: int = 0


def guess_mime_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _EXTRA_TYPES:
        return _EXTRA_TYPES[suffix]
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "application/octet-stream"


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("Bytes", "KB", "MB"):
        if value < 1024:
            return f"{value:.2f} {unit}".replace(".00 ", " ")
        value /= 1024
    return f"{value:.2f} GB"


def _should_exclude(name: str, relative: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        if "*" in pattern:
            if fnmatch.fnmatch(name, pattern):
                return True
        elif name == pattern or pattern in Path(relative).parts:
            return True
    return False


def load_file(path: str | Path) -> DocumentInput | None:
    """Load one file. Returns None (and logs) when it cannot be read."""
    file_path = Path(path).expanduser().resolve()
    if not file_path.is_file():
        logger.warning("document_not_found", path=str(file_path))
        return None

    mime_type = guess_mime_type(file_path)
    try:
        raw = file_path.read_bytes()
    except OSError as exc:
        logger.warning("document_read_failed", path=str(file_path), error=str(exc))
        return None

    if is_text_mime_type(mime_type):
        content = raw.decode("utf-8", errors="replace")
    else:
        content = base64.b64encode(raw).decode("ascii")

    return DocumentInput(name=file_path.name, mime_type=mime_type, content=content, size=len(raw))


def scan_folder(folder: str | Path, filters: FileFilters | None = None) -> ScanResult:
    """Walk *folder* and classify every file as accepted or skipped."""
    filters = filters or FileFilters()
    root = Path(folder).expanduser().resolve()
    if not root.exists():
        raise FileNotFoundError(f"Folder not found: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {root}")

    extensions = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in filters.extensions}
    result = ScanResult()
    _scan_directory(root, root, filters, extensions, result)
    return result


def _scan_directory(
    directory: Path,
    root: Path,
    filters: FileFilters,
    extensions: set[str],
    result: ScanResult,
) -> None:
    for entry in sorted(directory.iterdir()):
        relative = str(entry.relative_to(root))
        if _should_exclude(entry.name, relative, filters.exclude_patterns):
            result.skipped.append(SkippedFile(relative, "Matches exclude pattern"))
            continue

        if entry.is_dir():
            if filters.recursive:
                _scan_directory(entry, root, filters, extensions, result)
            continue
        if not entry.is_file():
            continue

        suffix = entry.suffix.lower()
        if extensions and suffix not in extensions:
            result.skipped.append(SkippedFile(relative, f"Extension {suffix} not in allowed list"))
            continue

        size = entry.stat().st_size
        if filters.max_file_size and size > filters.max_file_size:
            result.skipped.append(SkippedFile(
                relative,
                f"File size {format_bytes(size)} exceeds limit {format_bytes(filters.max_file_size)}",
            ))
            continue

        result.files.append(ScannedFile(entry, entry.name, size, guess_mime_type(entry)))
        result.total_size += size


def load_folder(folder: str | Path, filters: FileFilters | None = None) -> list[DocumentInput]:
    """Scan *folder* and load every accepted file."""
    scan = scan_folder(folder, filters)
    documents = [doc for doc in (load_file(f.path) for f in scan.files) if doc is not None]
    logger.info(
        "folder_loaded",
        folder=str(folder),
        loaded=len(documents),
        skipped=len(scan.skipped),
        total_bytes=scan.total_size,
    )
    return documents
