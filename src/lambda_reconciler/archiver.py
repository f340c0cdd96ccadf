"""Deterministic code packaging.

Archives are byte-stable: entries are sorted by relative path and every
entry carries a fixed timestamp and normalized permissions, so packaging an
unchanged tree always yields the same content hash. The hash is the base64
SHA-256 of the archive, the encoding Lambda reports as ``CodeSha256``.
"""

from __future__ import annotations

import base64
import functools
import hashlib
import logging
import os
import re
import stat
import tarfile
import tempfile
import zipfile
from collections.abc import Iterable, Sequence
from pathlib import Path

from .exceptions import InvalidFormatError, PackagingFailedError
from .models import Artifact

logger = logging.getLogger(__name__)

VALID_FORMATS = ("zip", "tar")

# Zip timestamps cannot predate 1980-01-01
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
TAR_EPOCH = 0

ZIP_COMPRESSION_LEVEL = 9

_CHUNK_SIZE = 1024 * 1024


def archive_format(path: str | Path) -> str:
    """Return the archive format for a path, validated against the allow-list.

    Raises:
        InvalidFormatError: If the extension is not ``zip`` or ``tar``
    """
    fmt = Path(path).suffix.lstrip(".").lower()
    if fmt not in VALID_FORMATS:
        raise InvalidFormatError(fmt, VALID_FORMATS)
    return fmt


def is_archive_path(path: str | Path) -> bool:
    path = Path(path)
    return path.is_file() and path.suffix.lstrip(".").lower() in VALID_FORMATS


def hash_file(path: str | Path) -> str:
    """Compute the base64 SHA-256 digest of a file."""
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as e:
        raise PackagingFailedError(str(path), str(e)) from e
    return base64.b64encode(digest.digest()).decode("ascii")


@functools.lru_cache(maxsize=None)
def _glob_regex(pattern: str) -> re.Pattern[str]:
    """Compile a path glob: ``*`` and ``?`` stay within one segment, ``**`` spans any."""
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            # Zero or more leading directories
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


def _is_excluded(rel_path: str, exclude_globs: Sequence[str]) -> bool:
    for pattern in exclude_globs:
        if _glob_regex(pattern).fullmatch(rel_path):
            return True
    return False


def list_files(
    source_dir: Path,
    exclude_globs: Sequence[str] = (),
    skip: Path | None = None,
) -> list[str]:
    """List files under ``source_dir`` as sorted POSIX relative paths.

    Dotfiles are included. ``skip`` is an absolute path left out of the
    listing (the archive being written, when it lives inside the tree).
    """
    skip_resolved = skip.resolve() if skip is not None else None
    files: list[str] = []
    for root, _dirs, names in os.walk(source_dir):
        for name in names:
            full = Path(root) / name
            if not full.is_file():
                continue
            if skip_resolved is not None and full.resolve() == skip_resolved:
                continue
            rel = full.relative_to(source_dir).as_posix()
            if not _is_excluded(rel, exclude_globs):
                files.append(rel)
    # Sorted order is what makes the archive hash stable
    files.sort()
    return files


def _file_mode(path: Path) -> int:
    return 0o755 if os.stat(path).st_mode & stat.S_IXUSR else 0o644


def _write_zip(output_path: Path, entries: Iterable[tuple[Path, str]]) -> None:
    with zipfile.ZipFile(
        output_path,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=ZIP_COMPRESSION_LEVEL,
    ) as zf:
        for src, arcname in entries:
            info = zipfile.ZipInfo(arcname, date_time=ZIP_EPOCH)
            info.external_attr = (stat.S_IFREG | _file_mode(src)) << 16
            info.create_system = 3  # unix, so external_attr is honoured
            zf.writestr(
                info,
                src.read_bytes(),
                compress_type=zipfile.ZIP_DEFLATED,
                compresslevel=ZIP_COMPRESSION_LEVEL,
            )


def _write_tar(output_path: Path, entries: Iterable[tuple[Path, str]]) -> None:
    with tarfile.open(output_path, "w", format=tarfile.PAX_FORMAT) as tf:
        for src, arcname in entries:
            info = tarfile.TarInfo(arcname)
            info.size = src.stat().st_size
            info.mtime = TAR_EPOCH
            info.mode = _file_mode(src)
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            with open(src, "rb") as f:
                tf.addfile(info, f)


def pack(
    source_dir: str | Path,
    include_files: Sequence[str | Path] = (),
    exclude_globs: Sequence[str] = (),
    prefix: str | None = None,
    output_path: str | Path | None = None,
    fmt: str = "zip",
) -> Artifact:
    """
    Package a directory into a deterministic archive.

    Args:
        source_dir: Directory to archive
        include_files: Files appended after the tree under their base name
        exclude_globs: Glob patterns (relative POSIX paths) to leave out
        prefix: Optional path prefix for the tree entries
        output_path: Destination file. Its extension selects the format.
            Defaults to a fresh temporary file.
        fmt: Archive format when ``output_path`` is not given

    Returns:
        Artifact with the archive path and its content hash

    Raises:
        InvalidFormatError: If the format is not ``zip`` or ``tar``
        PackagingFailedError: On any I/O error while archiving
    """
    source = Path(source_dir)

    if output_path is None:
        if fmt not in VALID_FORMATS:
            raise InvalidFormatError(fmt, VALID_FORMATS)
        fd, tmp_name = tempfile.mkstemp(prefix="lambda-", suffix=f".{fmt}")
        os.close(fd)
        output = Path(tmp_name)
    else:
        output = Path(output_path)
        fmt = archive_format(output)

    if not source.is_dir():
        raise PackagingFailedError(str(source), "source is not a directory")

    try:
        rel_paths = list_files(source, exclude_globs, skip=output)
        entries: list[tuple[Path, str]] = [
            (source / rel, f"{prefix.rstrip('/')}/{rel}" if prefix else rel) for rel in rel_paths
        ]
        entries.extend((Path(inc), Path(inc).name) for inc in include_files)

        output.parent.mkdir(parents=True, exist_ok=True)
        if fmt == "zip":
            _write_zip(output, entries)
        else:
            _write_tar(output, entries)
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise PackagingFailedError(str(source), str(e)) from e

    content_hash = hash_file(output)
    logger.debug(
        "Packed %d files from %s into %s (%s)", len(entries), source, output, content_hash
    )
    return Artifact(path=output, content_hash=content_hash)


def pack_code(
    code: str | Path,
    shims: Sequence[str | Path] = (),
    exclude_globs: Sequence[str] = (),
    output_path: str | Path | None = None,
) -> Artifact:
    """Package function code, or hash it as-is when it already is an archive."""
    if is_archive_path(code):
        path = Path(code).resolve()
        logger.debug("Using prebuilt archive %s", path)
        return Artifact(path=path, content_hash=hash_file(path))
    return pack(code, include_files=shims, exclude_globs=exclude_globs, output_path=output_path)
