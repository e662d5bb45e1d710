"""Atomic, permission-restricted file writes for the credential vault."""

from __future__ import annotations

import os
import stat
import sys
import time
from pathlib import Path

from loguru import logger

from basecamp_cli.errors import SecureStorageError


def write_file_atomically(path: Path, contents: bytes) -> None:
    """Replace ``path`` with ``contents`` so readers never see a partial file.

    The bytes are written to a uniquely named temporary file in the same
    directory, synced to disk and then renamed over the destination. If
    anything fails after the temporary file exists it is removed and the
    destination is left untouched.

    Raises:
        SecureStorageError: If any step of the write fails.
    """
    directory = path.parent
    nonce = time.time_ns()
    tmp_path = directory / f".{path.name}.tmp-{os.getpid()}-{nonce}"

    try:
        fd = os.open(
            tmp_path,
            os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0),
            stat.S_IRUSR | stat.S_IWUSR,
        )
    except OSError as e:
        raise SecureStorageError(
            f"Failed to create temporary secret file {tmp_path}: {e}"
        ) from e

    try:
        with os.fdopen(fd, "wb") as tmp_file:
            try:
                tmp_file.write(contents)
                tmp_file.flush()
            except OSError as e:
                raise SecureStorageError(
                    f"Failed to write temporary secret file {tmp_path}: {e}"
                ) from e
            try:
                os.fsync(tmp_file.fileno())
            except OSError as e:
                raise SecureStorageError(
                    f"Failed to sync temporary secret file {tmp_path}: {e}"
                ) from e

        try:
            os.replace(tmp_path, path)
        except OSError as e:
            raise SecureStorageError(
                f"Failed to atomically replace secret file {path} with {tmp_path}: {e}"
            ) from e
    except BaseException:
        _remove_quietly(tmp_path)
        raise

    logger.debug("Wrote {} bytes to {}", len(contents), path)


def set_secure_file_permissions(path: Path) -> None:
    """Restrict ``path`` to owner read/write (0600)."""
    if sys.platform == "win32":
        return
    try:
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)
    except OSError as e:
        raise SecureStorageError(
            f"Failed to set secure permissions on file {path}: {e}"
        ) from e


def set_secure_dir_permissions(path: Path) -> None:
    """Restrict directory ``path`` to its owner (0700)."""
    if sys.platform == "win32":
        return
    try:
        path.chmod(stat.S_IRWXU)
    except OSError as e:
        raise SecureStorageError(
            f"Failed to set secure permissions on directory {path}: {e}"
        ) from e


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove temporary file {}: {}", path, e)
