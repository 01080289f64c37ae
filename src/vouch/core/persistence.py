"""JSON snapshot persistence for ledger and pool state.

Snapshot layout:
    {
        "version": 1,
        "ledger": {"posts": [...], "verifications": [...]},
        "fee_pool": {"platform_fee_rate": "0.02", "total_deposited": "...", ...}
    }

Decimals are stored as strings and timestamps as ISO-8601. Writes go to
a temporary file that replaces the snapshot, so a crash mid-write
leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .exceptions import ConfigException

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
SNAPSHOT_SECTIONS = ("ledger", "fee_pool")


class StateStore:
    """Reads and writes the state snapshot file."""

    def __init__(self, storage_path: Path | str) -> None:
        self._path = Path(storage_path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def save(self, ledger: dict[str, Any], fee_pool: dict[str, Any]) -> None:
        snapshot = {
            "version": SNAPSHOT_VERSION,
            "ledger": ledger,
            "fee_pool": fee_pool,
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(snapshot, f, sort_keys=True, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        finally:
            # Only a failed write leaves the temp file behind
            tmp_path.unlink(missing_ok=True)
        logger.debug(f"State snapshot written to {self._path}")

    def load(self) -> dict[str, Any] | None:
        """Return the snapshot, or None if no snapshot exists.

        Raises:
            ConfigException: If the file is not a readable snapshot.
        """
        if not self._path.exists():
            return None
        try:
            with self._path.open("r", encoding="utf-8") as f:
                snapshot = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigException(f"State snapshot {self._path} is not valid JSON: {e}") from e

        version = snapshot.get("version") if isinstance(snapshot, dict) else None
        if version != SNAPSHOT_VERSION:
            raise ConfigException(
                f"Unsupported state snapshot version {version!r} in {self._path}"
            )
        missing = [s for s in SNAPSHOT_SECTIONS if not isinstance(snapshot.get(s), dict)]
        if missing:
            raise ConfigException(
                f"State snapshot {self._path} is missing sections: {', '.join(missing)}"
            )
        logger.info(f"Loaded state snapshot from {self._path}")
        return snapshot
