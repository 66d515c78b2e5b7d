"""Pull-history ledger: synchronization, statistics and services."""

from .merge import merge_records
from .records import RecordFetcher
from .service import GachaLogService, extract_access_token, normalize_import
from .statistics import (
    GachaView,
    PoolStats,
    build_gacha_view,
    pity_by_pool,
    pity_since_last_rare,
    pool_stats,
    rare_cost_by_pool,
    render_text_summary,
)
from .sync import LedgerSynchronizer, SingleFlight, SyncResult

__all__ = [
    "merge_records",
    "RecordFetcher",
    "GachaLogService",
    "extract_access_token",
    "normalize_import",
    "GachaView",
    "PoolStats",
    "build_gacha_view",
    "pity_by_pool",
    "pity_since_last_rare",
    "pool_stats",
    "rare_cost_by_pool",
    "render_text_summary",
    "LedgerSynchronizer",
    "SingleFlight",
    "SyncResult",
]
