"""Deduplicating merge of pull records."""

from __future__ import annotations

from typing import Iterable, Sequence

from ..domain.models import PullRecord


def seq_key(record: PullRecord) -> str:
    """Merge key of a record; empty when the record carries no ``seqId``."""
    if record.raw:
        value = record.raw.get("seqId")
        return "" if value is None else str(value).strip()
    return str(record.seq_id) if record.seq_id else ""


def max_seq_id(records: Iterable[PullRecord]) -> int:
    return max((record.seq_id for record in records), default=0)


def merge_records(
    existing: Sequence[PullRecord], incoming: Iterable[PullRecord]
) -> tuple[list[PullRecord], int]:
    """Append unseen records and sort descending by ``seqId``.

    Existing records always win over incoming ones with the same key, and
    records without a ``seqId`` are ignored.
    """
    seen = {seq_key(record) for record in existing}
    merged = list(existing)
    new_count = 0
    for record in incoming:
        key = seq_key(record)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(record)
        new_count += 1
    merged.sort(key=lambda record: record.seq_id, reverse=True)
    return merged, new_count
