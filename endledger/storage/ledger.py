"""JSON-file persistence of per-role pull ledgers."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from ..domain.exceptions import InvalidRoleId, LedgerCorrupted, LedgerRoleMismatch, LedgerWriteError
from ..domain.models import Ledger

logger = logging.getLogger(__name__)

_ROLE_ID_RE = re.compile(r"^[0-9A-Za-z_-]+$")


class LedgerStore:
    """Stores one ``<role_id>.json`` document per role.

    Writes go to a temporary sibling first and are moved into place with
    :func:`os.replace`, so readers never observe a partially written file.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, role_id: str) -> Path:
        rid = str(role_id).strip()
        if not _ROLE_ID_RE.match(rid):
            raise InvalidRoleId(f"Invalid role id {role_id!r}")
        return self._dir / f"{rid}.json"

    async def exists(self, role_id: str) -> bool:
        return await asyncio.to_thread(self.path_for(role_id).is_file)

    async def load(self, role_id: str) -> Ledger | None:
        return await asyncio.to_thread(self._load_sync, role_id)

    async def read_bytes(self, role_id: str) -> bytes | None:
        """Return the stored document verbatim, for export."""
        return await asyncio.to_thread(self._read_bytes_sync, role_id)

    async def save(self, role_id: str, ledger: Ledger) -> Path:
        if ledger.info.uid and ledger.info.uid != str(role_id):
            raise LedgerRoleMismatch(str(role_id), ledger.info.uid)
        ledger.info.uid = str(role_id)
        return await asyncio.to_thread(self._save_sync, role_id, ledger)

    async def delete(self, role_id: str) -> Path | None:
        return await asyncio.to_thread(self._delete_sync, role_id)

    def _load_sync(self, role_id: str) -> Ledger | None:
        path = self.path_for(role_id)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LedgerCorrupted(f"Cannot read ledger {path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise LedgerCorrupted(f"Ledger {path.name} is not a JSON object")

        ledger = Ledger.from_dict(data)
        if ledger.info.uid and ledger.info.uid != str(role_id):
            raise LedgerRoleMismatch(str(role_id), ledger.info.uid)
        ledger.info.uid = str(role_id)
        return ledger

    def _read_bytes_sync(self, role_id: str) -> bytes | None:
        path = self.path_for(role_id)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise LedgerCorrupted(f"Cannot read ledger {path.name}: {exc}") from exc

    def _save_sync(self, role_id: str, ledger: Ledger) -> Path:
        path = self.path_for(role_id)
        payload = json.dumps(ledger.to_dict(), ensure_ascii=False, indent=2)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as exc:
            raise LedgerWriteError(f"Cannot write ledger {path.name}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise LedgerWriteError(f"Cannot write ledger {path.name}: {exc}") from exc
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Ledger %s written (%d records)", role_id, ledger.total)
        return path

    def _delete_sync(self, role_id: str) -> Path | None:
        path = self.path_for(role_id)
        if not path.is_file():
            return None
        backup = path.with_name(f"{path.name}.bak")
        try:
            shutil.copyfile(path, backup)
            path.unlink()
        except OSError as exc:
            raise LedgerWriteError(f"Cannot delete ledger {path.name}: {exc}") from exc
        logger.info("Ledger %s deleted, backup kept at %s", role_id, backup.name)
        return backup
