"""Pack and unpack workspace selections.

One codec serves every :class:`ArchiveFormat`. Packing streams entry by entry
(``zipfile`` writes each member as it goes, ``tarfile`` runs in ``w|`` stream
mode), so memory use does not grow with workspace size.

Symlinks are stored as links in every format and restored as links, whatever
their target. Unpacking overwrites whatever is in the way, refuses members
that would land outside the destination (by name, by hard-link target, or by
being written through a restored symlink), and reports damaged input as
:class:`ArchiveCorruptError`. Plain filesystem failures surface as ``OSError``.
"""

from __future__ import annotations

import gzip
import logging
import os
import re
import shutil
import stat
import tarfile
import time
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO

from clonespace.foundation.errors import ArchiveCorruptError
from clonespace.snapshot.formats import ArchiveFormat
from clonespace.snapshot.selector import PathSelection

logger = logging.getLogger(__name__)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

# Exceptions that mean "the bytes are bad" rather than "the disk is bad"
_CORRUPT_ERRORS = (
    zipfile.BadZipFile,
    tarfile.TarError,
    gzip.BadGzipFile,
    zlib.error,
    EOFError,
)


class ArchiveCodec:
    """Stateless packer/unpacker for the three snapshot formats."""

    # ─────────────────────────────────────────────────────────────────
    # Packing
    # ─────────────────────────────────────────────────────────────────

    def pack(self, selection: PathSelection, sink: BinaryIO, fmt: ArchiveFormat) -> int:
        """Write ``selection`` to ``sink`` in ``fmt``.

        Args:
            selection: Paths to archive; directories become explicit entries
            sink: Writable binary stream (left open)
            fmt: Archive format

        Returns:
            Number of entries written.
        """
        if fmt is ArchiveFormat.ZIP:
            return self._pack_zip(selection, sink)
        return self._pack_tar(selection, sink, fmt)

    def _pack_zip(self, selection: PathSelection, sink: BinaryIO) -> int:
        written = 0
        with zipfile.ZipFile(
            sink, "w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False
        ) as zf:
            for rel, path, is_dir in selection.entries():
                if path.is_symlink():
                    zf.writestr(_zip_link_info(rel, path), os.readlink(path))
                else:
                    zf.write(path, rel + "/" if is_dir else rel)
                written += 1
        return written

    def _pack_tar(self, selection: PathSelection, sink: BinaryIO, fmt: ArchiveFormat) -> int:
        written = 0
        with tarfile.open(
            fileobj=sink, mode=f"w|{fmt.tar_compression}", format=tarfile.PAX_FORMAT
        ) as tar:
            for rel, path, _ in selection.entries():
                tar.add(path, arcname=rel, recursive=False)
                written += 1
        return written

    # ─────────────────────────────────────────────────────────────────
    # Unpacking
    # ─────────────────────────────────────────────────────────────────

    def unpack(
        self,
        source: BinaryIO,
        destination: Path,
        fmt: ArchiveFormat,
        name: str | None = None,
    ) -> int:
        """Extract an archive stream into ``destination``.

        Args:
            source: Readable binary stream (seekable for ZIP)
            destination: Directory to extract into (created if missing)
            fmt: Archive format
            name: Label for error messages (defaults to the stream's name)

        Returns:
            Number of entries extracted.

        Raises:
            ArchiveCorruptError: Truncated/malformed stream or unsafe member.
            OSError: Filesystem failure while writing.
        """
        label = name or str(getattr(source, "name", "<stream>"))
        destination.mkdir(parents=True, exist_ok=True)
        try:
            if fmt is ArchiveFormat.ZIP:
                return self._unpack_zip(source, destination, label)
            return self._unpack_tar(source, destination, fmt, label)
        except ArchiveCorruptError:
            raise
        except tarfile.FilterError as e:
            member = getattr(e, "tarinfo", None)
            raise ArchiveCorruptError(
                label, str(e), cause=e, member=member.name if member else "?"
            ) from e
        except _CORRUPT_ERRORS as e:
            raise ArchiveCorruptError(label, str(e) or type(e).__name__, cause=e) from e

    def _unpack_zip(self, source: BinaryIO, destination: Path, label: str) -> int:
        extracted = 0
        with zipfile.ZipFile(source) as zf:
            for info in zf.infolist():
                target = _member_target(destination, info.filename, label)
                if target is None:
                    continue
                _check_parents(destination, target, label, info.filename)
                if stat.S_ISLNK(info.external_attr >> 16):
                    _clear_conflict(target, is_dir=False)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    os.symlink(zf.read(info).decode("utf-8"), target)
                elif info.is_dir():
                    _clear_conflict(target, is_dir=True)
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    _clear_conflict(target, is_dir=False)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(target, "wb") as out:
                        shutil.copyfileobj(src, out)
                    mode = (info.external_attr >> 16) & 0o777
                    if mode:
                        os.chmod(target, mode)
                extracted += 1
        return extracted

    def _unpack_tar(
        self, source: BinaryIO, destination: Path, fmt: ArchiveFormat, label: str
    ) -> int:
        extracted = 0
        with tarfile.open(fileobj=source, mode=f"r|{fmt.tar_compression}") as tar:
            for member in tar:
                target = _member_target(destination, member.name, label)
                if target is None:
                    continue
                _check_parents(destination, target, label, member.name)
                if member.islnk():
                    _member_target(destination, member.linkname, label)
                _clear_conflict(target, is_dir=member.isdir())
                # "tar" keeps symlinks to absolute targets, which "data" refuses
                tar.extract(member, destination, filter="tar")
                extracted += 1
        return extracted


def _member_target(destination: Path, name: str, label: str) -> Path | None:
    """Map an archive member name to a path inside ``destination``.

    Returns ``None`` for entries naming the destination itself (``./``).
    """
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or _DRIVE_RE.match(normalized):
        raise ArchiveCorruptError(label, "absolute member path", member=name)
    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if ".." in parts:
        raise ArchiveCorruptError(label, "member path climbs out with '..'", member=name)
    if not parts:
        return None
    return destination.joinpath(*parts)


def _zip_link_info(rel: str, path: Path) -> zipfile.ZipInfo:
    """Zip entry header marking ``rel`` as a symlink (Info-ZIP convention)."""
    mtime = time.localtime(os.lstat(path).st_mtime)[:6]
    info = zipfile.ZipInfo(rel, date_time=max(mtime, _ZIP_EPOCH))
    info.create_system = 3  # Unix, so readers honour the mode bits
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    info.compress_type = zipfile.ZIP_STORED
    return info


def _check_parents(destination: Path, target: Path, label: str, name: str) -> None:
    """Refuse a member whose parent directories include a symlink."""
    parent = target.parent
    while parent != destination:
        if parent.is_symlink():
            raise ArchiveCorruptError(
                label, f"parent '{parent.name}' is a symlink", member=name
            )
        parent = parent.parent


def _clear_conflict(target: Path, is_dir: bool) -> None:
    """Remove whatever occupies ``target`` if the incoming entry cannot coexist."""
    if not os.path.lexists(target):
        return
    existing_is_dir = target.is_dir() and not target.is_symlink()
    if is_dir and existing_is_dir:
        return
    if existing_is_dir:
        shutil.rmtree(target)
    else:
        target.unlink()
