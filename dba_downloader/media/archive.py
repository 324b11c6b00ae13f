"""
Pulls a single executable out of a downloaded zip or tar archive.
"""

import logging
import shutil
import tarfile
import zipfile
from collections.abc import Iterable
from pathlib import Path

from dba_downloader.exceptions import ArchiveMemberNotFoundError

log = logging.getLogger(__name__)


def find_member(names: Iterable[str], executable_name: str) -> str | None:
    """
    Returns the first archive entry whose name ends with the executable name,
    compared case-insensitively, or None if no entry matches.
    """
    target = executable_name.lower()
    for name in names:
        if name.lower().endswith(target):
            return name
    return None


def _extract_from_zip(archive_path: Path, executable_name: str, dest: Path) -> str:
    with zipfile.ZipFile(archive_path, "r") as zip_ref:
        names = [info.filename for info in zip_ref.infolist() if not info.is_dir()]
        member = find_member(names, executable_name)
        if member is None:
            raise ArchiveMemberNotFoundError(
                f"Archive '{archive_path.name}' did not contain {executable_name}."
            )
        with zip_ref.open(member) as src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out)
    return member


def _extract_from_tar(archive_path: Path, executable_name: str, dest: Path) -> str:
    with tarfile.open(archive_path, "r:*") as tar_ref:
        members = {m.name: m for m in tar_ref.getmembers() if m.isfile()}
        member = find_member(members, executable_name)
        if member is None:
            raise ArchiveMemberNotFoundError(
                f"Archive '{archive_path.name}' did not contain {executable_name}."
            )
        src = tar_ref.extractfile(members[member])
        if src is None:
            raise ArchiveMemberNotFoundError(
                f"Archive member '{member}' could not be read."
            )
        with src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out)
    return member


def extract_executable(archive_path: Path, executable_name: str, dest: Path) -> None:
    """
    Extracts the executable from a zip or tar archive to `dest`.

    Raises:
        ArchiveMemberNotFoundError: If no entry matches the executable name.
        zipfile.BadZipFile, tarfile.TarError: If the archive is corrupt.
    """
    if zipfile.is_zipfile(archive_path):
        member = _extract_from_zip(archive_path, executable_name, dest)
    else:
        member = _extract_from_tar(archive_path, executable_name, dest)
    log.debug(f"Extracted '{member}' from '{archive_path.name}' to '{dest}'")
