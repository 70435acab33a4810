"""
Acknowledgement ledger — remembers, per user, the newest version of each
module's new features the user has acknowledged.

Modules missing from a user's record count as version 0 (never seen). Every
write replaces the user's whole record; two concurrent writers for the same
user race and the last one wins.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Mapping

from features.newfeatures.ladder import VersionLadder, parse_version
from utils.kvfile import read_kv_file_if_exists, write_kv_file

log = logging.getLogger(__name__)

NEVER = Decimal(0)


class AcknowledgementLedger:
    """Read/modify/write logic shared by the ledger backends.

    Backends implement ``_read`` and ``_write`` for a whole per-user record.
    """

    def __init__(self, ladder: VersionLadder):
        self.ladder = ladder

    def _read(self, user: str) -> dict[str, Decimal]:
        raise NotImplementedError

    def _write(self, user: str, record: dict[str, Decimal]) -> None:
        raise NotImplementedError

    def get_acknowledged(self, user: str) -> dict[str, Decimal]:
        return self._read(user)

    def acknowledged_version(self, user: str, module: str) -> Decimal:
        return self._read(user).get(module, NEVER)

    def acknowledge(self, user: str, module: str, version: Decimal) -> None:
        """Record that ``user`` has seen ``module``'s features up to ``version``."""
        self.acknowledge_many(user, {module: version})

    def acknowledge_many(self, user: str, versions: Mapping[str, Decimal]) -> None:
        versions = {m: parse_version(v) for m, v in versions.items()}
        record = self._read(user)
        record.update(versions)
        self._write(user, record)
        log.info("Acknowledged new features for %s: %s", user,
                 ", ".join(f"{m} {v}" for m, v in versions.items()))

    def unacknowledge(self, user: str, module: str) -> None:
        """Step ``module`` back one version, so its newest features show again."""
        record = self._read(user)
        current = record.get(module, NEVER)
        if current <= 0:
            log.debug("Nothing to roll back for %s / %s", user, module)
            return
        record[module] = max(self.ladder.previous(current, module), NEVER)
        self._write(user, record)
        log.info("Rolled back new features for %s: %s %s -> %s",
                 user, module, current, record[module])


class FileLedger(AcknowledgementLedger):
    """One key=value file per user under ``seen_dir``."""

    DIR_MODE = 0o700

    def __init__(self, seen_dir: Path | str, ladder: VersionLadder):
        super().__init__(ladder)
        self.seen_dir = Path(seen_dir)

    def record_path(self, user: str) -> Path:
        if not user or "/" in user or "\\" in user or user.startswith(".") or "\0" in user:
            raise ValueError(f"Invalid user name: {user!r}")
        return self.seen_dir / user

    def _read(self, user: str) -> dict[str, Decimal]:
        path = self.record_path(user)
        try:
            raw = read_kv_file_if_exists(path)
        except UnicodeDecodeError as e:
            log.warning("Ignoring undecodable record %s: %s", path, e)
            return {}
        record: dict[str, Decimal] = {}
        for module, value in raw.items():
            try:
                record[module] = parse_version(value)
            except ValueError:
                log.warning("Ignoring bad version %r for %s in %s's record", value, module, user)
        return record

    def _write(self, user: str, record: dict[str, Decimal]) -> None:
        path = self.record_path(user)
        if not self.seen_dir.is_dir():
            self.seen_dir.mkdir(mode=self.DIR_MODE, parents=True, exist_ok=True)
            os.chmod(self.seen_dir, self.DIR_MODE)
        write_kv_file(path, {m: str(v) for m, v in record.items()})
