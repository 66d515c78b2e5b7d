"""Pity and cost statistics over a pull ledger.

All functions are pure and recomputed on every view. Two statistics are
derived per pool:

* pity: pulls since the newest rare (rarity 6) pull, scanning newest first;
* cost: for every rare pull, the pulls since the previous rare in the same
  pool, counting the rare itself, scanning oldest first.

With ``exclude_free`` both statistics skip free pulls when counting, while a
free rare pull still ends the pity scan and still resets the cost counter.
The view counts free pulls in both columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from ..domain.models import RARE_RARITY, Account, Ledger, PullRecord

RECENT_RARE_LIMIT = 24
CHARACTER_PITY_CAP = 90
WEAPON_PITY_CAP = 80

# Upstream timestamps are milliseconds; anything below this is seconds.
_MS_THRESHOLD = 10**11


def _newest_first_key(record: PullRecord) -> tuple[int, int]:
    return (record.gacha_ts, record.seq_id)


def sort_newest_first(records: Iterable[PullRecord]) -> list[PullRecord]:
    return sorted(records, key=_newest_first_key, reverse=True)


def sort_oldest_first(records: Iterable[PullRecord]) -> list[PullRecord]:
    return sorted(records, key=_newest_first_key)


def group_by_pool(records: Iterable[PullRecord]) -> dict[str, list[PullRecord]]:
    pools: dict[str, list[PullRecord]] = {}
    for record in records:
        if record.pool_id:
            pools.setdefault(record.pool_id, []).append(record)
    return pools


def pity_since_last_rare(records: Iterable[PullRecord], exclude_free: bool = False) -> int:
    pity = 0
    for record in sort_newest_first(records):
        if record.rarity == RARE_RARITY:
            break
        if exclude_free and record.is_free:
            continue
        pity += 1
    return pity


def pity_by_pool(records: Iterable[PullRecord], exclude_free: bool = False) -> dict[str, int]:
    return {
        pool_id: pity_since_last_rare(items, exclude_free)
        for pool_id, items in group_by_pool(records).items()
    }


def rare_cost_by_pool(
    records: Iterable[PullRecord], exclude_free: bool = False
) -> dict[tuple[str, int, int], int]:
    cost: dict[tuple[str, int, int], int] = {}
    for items in group_by_pool(records).values():
        since_last = 0
        for record in sort_oldest_first(items):
            if not (exclude_free and record.is_free):
                since_last += 1
            if record.rarity != RARE_RARITY:
                continue
            cost[record.key] = since_last
            since_last = 0
    return cost


@dataclass(slots=True)
class PoolStats:
    total: int
    six: int
    free: int | None
    non_free: int
    avg: float | None

    @property
    def avg_text(self) -> str:
        return f"{self.avg:.1f}" if self.avg is not None else "-"


def pool_stats(records: Sequence[PullRecord], has_free: bool = False) -> PoolStats:
    total = len(records)
    six = sum(1 for record in records if record.is_rare)
    free = sum(1 for record in records if record.is_free) if has_free else None
    non_free = total - (free or 0)
    avg = total / six if six > 0 else None
    return PoolStats(total=total, six=six, free=free, non_free=non_free, avg=avg)


@dataclass(slots=True)
class LogRow:
    date: str
    time: str
    name: str
    count: int
    rarity: int = RARE_RARITY
    is_free: bool = False
    pending: bool = False


@dataclass(slots=True)
class PoolView:
    key: str
    title: str
    time_range: str
    pity: int
    cap: int
    stats: PoolStats
    logs: list[LogRow] = field(default_factory=list)


@dataclass(slots=True)
class GachaView:
    role_id: str
    nickname: str
    export_time: str
    total: int
    six_total: int
    char_total: int
    weapon_total: int
    pools: list[PoolView]
    text: str = ""


def to_datetime(ts: int, tz_hours: int = 8) -> datetime | None:
    if ts <= 0:
        return None
    seconds = ts / 1000 if ts >= _MS_THRESHOLD else ts
    try:
        return datetime.fromtimestamp(seconds, tz=timezone(timedelta(hours=tz_hours)))
    except (ValueError, OverflowError, OSError):
        return None


def format_datetime(ts: int, tz_hours: int = 8) -> str:
    moment = to_datetime(ts, tz_hours)
    return moment.strftime("%Y-%m-%d %H:%M") if moment else "-"


def format_time_range(records: Sequence[PullRecord], tz_hours: int = 8) -> str:
    moments = [to_datetime(record.gacha_ts, tz_hours) for record in records]
    moments = [moment for moment in moments if moment is not None]
    if not moments:
        return "-"
    return f"{min(moments):%Y.%m.%d} ~ {max(moments):%Y.%m.%d}"


def _pool_view(
    key: str,
    title: str,
    records: Sequence[PullRecord],
    *,
    pity: int,
    cap: int,
    has_free: bool,
    cost: dict[tuple[str, int, int], int],
    export_time: str,
    tz_hours: int,
) -> PoolView:
    rares = [record for record in sort_newest_first(records) if record.is_rare][:RECENT_RARE_LIMIT]
    logs = []
    for record in rares:
        moment = to_datetime(record.gacha_ts, tz_hours)
        logs.append(
            LogRow(
                date=moment.strftime("%m.%d") if moment else "-",
                time=format_datetime(record.gacha_ts, tz_hours),
                name=record.name,
                count=cost.get(record.key, 1),
                rarity=record.rarity,
                is_free=record.is_free,
            )
        )
    if pity > 0:
        logs.insert(0, LogRow(date="now", time=export_time, name="pending", count=pity, rarity=0, pending=True))
    return PoolView(
        key=key,
        title=title,
        time_range=format_time_range(records, tz_hours),
        pity=pity,
        cap=cap,
        stats=pool_stats(records, has_free=has_free),
        logs=logs,
    )


def build_gacha_view(ledger: Ledger, account: Account | None = None) -> GachaView:
    tz_hours = ledger.info.timezone
    chars = ledger.char_records
    weapons = ledger.weapon_records
    export_time = (
        format_datetime(ledger.info.export_timestamp, tz_hours) if ledger.info.export_timestamp else "-"
    )

    char_cost = rare_cost_by_pool(chars, exclude_free=False)
    weapon_cost = rare_cost_by_pool(weapons, exclude_free=False)
    char_pity = pity_by_pool(chars, exclude_free=False)
    weapon_pity = pity_by_pool(weapons, exclude_free=False)

    limited = [record for record in chars if record.pool_id.startswith("special_")]
    standard = [record for record in chars if record.pool_id == "standard"]
    beginner = [record for record in chars if record.pool_id == "beginner"]

    common = {"export_time": export_time, "tz_hours": tz_hours}
    pools = [
        _pool_view(
            "limited", "Limited", limited,
            pity=pity_since_last_rare(limited), cap=CHARACTER_PITY_CAP, has_free=True, cost=char_cost, **common,
        ),
        _pool_view(
            "weapon", "Weapon", weapons,
            pity=max(weapon_pity.values(), default=0), cap=WEAPON_PITY_CAP, has_free=False, cost=weapon_cost,
            **common,
        ),
        _pool_view(
            "standard", "Standard", standard,
            pity=char_pity.get("standard", 0), cap=CHARACTER_PITY_CAP, has_free=True, cost=char_cost, **common,
        ),
        _pool_view(
            "beginner", "Beginner", beginner,
            pity=char_pity.get("beginner", 0), cap=CHARACTER_PITY_CAP, has_free=True, cost=char_cost, **common,
        ),
    ]

    view = GachaView(
        role_id=ledger.info.uid,
        nickname=(account.nickname if account else "") or "unnamed",
        export_time=export_time,
        total=len(chars) + len(weapons),
        six_total=sum(1 for record in chars if record.is_rare) + sum(1 for record in weapons if record.is_rare),
        char_total=len(chars),
        weapon_total=len(weapons),
        pools=pools,
    )
    view.text = render_text_summary(view)
    return view


def render_text_summary(view: GachaView) -> str:
    lines = [
        "[Endfield] Pull history",
        f"Account: {view.nickname} UID:{view.role_id or '-'}",
        f"Updated: {view.export_time}",
        f"Total pulls: {view.total}",
    ]
    for pool in view.pools:
        stats = pool.stats
        free = f" free:{stats.free}" if stats.free is not None else ""
        avg = f" avg:{stats.avg:.1f}" if stats.avg is not None else ""
        lines.append(f"{pool.title}: pulls:{stats.total}{free} 6*:{stats.six} pity:{pool.pity}{avg}")
    return "\n".join(lines)
