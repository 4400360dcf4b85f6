"""
Module: common.file_locking

Purpose:
    Cross-platform file locking for the local JSON stores.
    Uses portalocker for Mac, Windows, and Linux compatibility.

Key Functions:
    - locked_file: Context manager for locked file access
    - locked_append_jsonl: Append records to JSONL with exclusive lock
    - locked_read_jsonl: Read JSONL records under a shared lock
    - locked_read_json: Read a JSON document under a shared lock
    - locked_write_json: Replace a JSON document with exclusive lock

Dependencies:
    - portalocker: Cross-platform file locking

Used By:
    - diagnostics.store: Diagnostic result rows
    - presets.store: Saved worksheet presets
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Dict, Iterable, Iterator, List

import portalocker

logger = logging.getLogger(__name__)


@contextmanager
def locked_file(
    path: Path,
    mode: str = 'r',
    lock_type: int = portalocker.LOCK_EX,
) -> Iterator[IO[str]]:
    """
    Open `path` with a portalocker lock held for the whole block.

    Parent directories are created; a missing file is created empty for
    read/update modes so the lock always has something to hold.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if 'r' in mode:
        path.touch(exist_ok=True)

    with open(path, mode, encoding='utf-8') as handle:
        portalocker.lock(handle, lock_type)
        try:
            yield handle
        finally:
            portalocker.unlock(handle)


def locked_append_jsonl(path: Path, records: Iterable[Dict[str, Any]]) -> int:
    """
    Append records to a JSONL file in a single locked write.

    All lines are serialized before the file is opened, so a record that
    cannot be encoded leaves the file untouched.

    Returns:
        Number of records written.
    """
    lines = [json.dumps(record, ensure_ascii=False) + '\n' for record in records]
    if not lines:
        return 0

    with locked_file(path, 'a', portalocker.LOCK_EX) as f:
        f.write(''.join(lines))

    logger.debug(f"Appended {len(lines)} records to {path.name}")
    return len(lines)


def locked_read_jsonl(path: Path) -> List[Dict[str, Any]]:
    """
    Read every record from a JSONL file under a shared lock.

    Blank lines are ignored; a malformed line is logged and skipped.
    """
    if not path.exists():
        return []

    records: List[Dict[str, Any]] = []
    with locked_file(path, 'r', portalocker.LOCK_SH) as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed line {line_no} in {path.name}: {e}")
    return records


def locked_read_json(path: Path) -> Any:
    """
    Read a JSON document under a shared lock.

    Returns:
        The decoded document, or None for an empty file.

    Raises:
        json.JSONDecodeError: If the document is malformed
    """
    with locked_file(path, 'r', portalocker.LOCK_SH) as handle:
        text = handle.read()
    return json.loads(text) if text.strip() else None


def locked_write_json(path: Path, data: Any) -> None:
    """
    Replace a JSON document under an exclusive lock.

    The document is serialized first and the file is truncated only once
    the lock is held, so a concurrent reader never sees a half-written
    document and an unencodable value leaves the file untouched.
    """
    text = json.dumps(data, indent=2, ensure_ascii=False)
    with locked_file(path, 'r+', portalocker.LOCK_EX) as handle:
        handle.truncate()
        handle.write(text)

    logger.debug(f"Wrote {path.name}")
