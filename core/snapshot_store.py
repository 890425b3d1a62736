"""
CSV-backed ATR snapshot store.

One row per symbol holding the last ATR value seen when the panel executed an
order for it. Every public operation re-reads the whole file first because
another panel instance may have rewritten it in the meantime; there is no
locking, the last full rewrite wins.

File layout (UTF-8, no quoting):

    AtrValue,Symbol
    0.0012,EURUSD
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from core.event_logging import log_event

logger = logging.getLogger(__name__)

DELIMITER = ","


class SnapshotStoreError(RuntimeError):
    """Raised when the backing file can be neither read nor created."""


@dataclass(frozen=True)
class SnapshotSchema:
    """Ordered column list shared by the reader and the writer."""

    version: int
    fields: Tuple[str, ...]

    @property
    def header(self) -> str:
        return DELIMITER.join(self.fields)

    def index(self, name: str) -> int:
        return self.fields.index(name)


SNAPSHOT_SCHEMA_V1 = SnapshotSchema(version=1, fields=("AtrValue", "Symbol"))
CURRENT_SCHEMA = SNAPSHOT_SCHEMA_V1


@dataclass
class SymbolSnapshot:
    symbol: str
    atr_value: float

    def to_row(self, schema: SnapshotSchema = CURRENT_SCHEMA) -> str:
        values = {
            "AtrValue": repr(float(self.atr_value)),
            "Symbol": self.symbol,
        }
        return DELIMITER.join(values[name] for name in schema.fields)

    @classmethod
    def from_row(cls, line: str, schema: SnapshotSchema = CURRENT_SCHEMA) -> "SymbolSnapshot":
        cols = line.split(DELIMITER)
        if len(cols) != len(schema.fields):
            raise ValueError(
                f"expected {len(schema.fields)} columns, got {len(cols)}: {line!r}"
            )
        return cls(
            symbol=cols[schema.index("Symbol")],
            atr_value=float(cols[schema.index("AtrValue")]),
        )


class SnapshotStore:
    """
    Durable ``symbol -> atr_value`` mapping.

    Steady-state operations never raise: ``get`` degrades to ``None`` and
    ``upsert``/``delete`` return ``False`` on any read/parse/write failure.
    Only construction is fatal (``SnapshotStoreError``).
    """

    def __init__(self, path: Path | str, *, schema: SnapshotSchema = CURRENT_SCHEMA) -> None:
        self.path = Path(path)
        self.schema = schema
        self.initialize()

    # --- lifecycle ---------------------------------------------------------
    def initialize(self) -> None:
        if self.path.exists():
            try:
                records = self._load()
            except OSError as exc:
                raise SnapshotStoreError(f"Cannot read snapshot file {self.path}: {exc}") from exc
            except ValueError as exc:
                logger.warning("Snapshot file %s is malformed, reads will degrade: %s", self.path, exc)
                return
            logger.info("Loaded %d ATR snapshot(s) from %s", len(records), self.path)
            return

        try:
            self._write([])
        except OSError as exc:
            raise SnapshotStoreError(f"Cannot create snapshot file {self.path}: {exc}") from exc
        logger.info("Created ATR snapshot file %s", self.path)

    # --- public API --------------------------------------------------------
    def get(self, symbol: str) -> Optional[SymbolSnapshot]:
        try:
            records = self._load()
        except (OSError, ValueError) as exc:
            logger.warning("Snapshot reload failed for get(%s): %s", symbol, exc)
            return None
        for record in records:
            if record.symbol == symbol:
                return record
        return None

    def all(self) -> List[SymbolSnapshot]:
        try:
            return self._load()
        except (OSError, ValueError) as exc:
            logger.warning("Snapshot reload failed for all(): %s", exc)
            return []

    def upsert(self, snapshot: SymbolSnapshot) -> bool:
        if not snapshot.symbol or DELIMITER in snapshot.symbol or "\n" in snapshot.symbol:
            log_event("WARN", "Refusing to store unsupported symbol", symbol=repr(snapshot.symbol), logger=logger)
            return False
        try:
            records = self._load()
        except (OSError, ValueError) as exc:
            log_event("ERROR", f"Snapshot reload failed, upsert skipped: {exc}", symbol=snapshot.symbol, logger=logger)
            return False

        for record in records:
            if record.symbol == snapshot.symbol:
                record.atr_value = float(snapshot.atr_value)
                break
        else:
            records.append(SymbolSnapshot(symbol=snapshot.symbol, atr_value=float(snapshot.atr_value)))

        try:
            self._write(records)
        except OSError as exc:
            log_event("ERROR", f"Snapshot write failed: {exc}", symbol=snapshot.symbol, logger=logger)
            return False
        log_event("SNAPSHOT", "Stored ATR snapshot", symbol=snapshot.symbol, extra={"atr": snapshot.atr_value}, logger=logger)
        return True

    def delete(self, symbol: str) -> bool:
        try:
            records = self._load()
        except (OSError, ValueError) as exc:
            log_event("ERROR", f"Snapshot reload failed, delete skipped: {exc}", symbol=symbol, logger=logger)
            return False

        kept = [record for record in records if record.symbol != symbol]
        try:
            self._write(kept)
        except OSError as exc:
            log_event("ERROR", f"Snapshot write failed: {exc}", symbol=symbol, logger=logger)
            return False
        if len(kept) != len(records):
            log_event("SNAPSHOT", "Deleted ATR snapshot", symbol=symbol, logger=logger)
        return True

    # --- file helpers ------------------------------------------------------
    def _load(self) -> List[SymbolSnapshot]:
        text = self.path.read_text(encoding="utf-8")
        lines = text.splitlines()
        if not lines:
            return []
        header = lines[0].strip()
        if header != self.schema.header:
            logger.warning(
                "Snapshot header %r does not match schema v%d %r; reading positionally",
                header,
                self.schema.version,
                self.schema.header,
            )
        records: List[SymbolSnapshot] = []
        for line in lines[1:]:
            if not line.strip():
                continue
            records.append(SymbolSnapshot.from_row(line.strip(), self.schema))
        return records

    def _write(self, records: Sequence[SymbolSnapshot]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lines = [self.schema.header]
        lines.extend(record.to_row(self.schema) for record in records)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8", newline="") as handle:
                handle.write("\n".join(lines) + "\n")
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
