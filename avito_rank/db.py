"""Supabase データベース操作モジュール.

全テーブルは avito_tracker スキーマに配置。
SUPABASE_URL / SUPABASE_SECRET_KEY が未設定なら保存しない。
"""

from __future__ import annotations

import logging
from functools import lru_cache

from supabase import create_client

from avito_rank.config import SUPABASE_SECRET_KEY, SUPABASE_URL
from avito_rank.models import PositionResult

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SECRET_KEY)


@lru_cache(maxsize=1)
def _client():
    return create_client(SUPABASE_URL, SUPABASE_SECRET_KEY)


def _table(name: str):
    """avito_tracker スキーマのテーブルを参照する."""
    return _client().schema("avito_tracker").table(name)


def build_position_records(
    results: list[PositionResult], query: str, searched_at: str
) -> list[dict]:
    """結果を (都市, 広告ID) 単位のレコードに展開する.

    順位が無い失敗結果は ad_id / position を None にした 1 行として残す。
    """
    records: list[dict] = []
    for r in results:
        base = {
            "city": r.city,
            "query": query,
            "error": r.error or None,
            "blocked": r.blocked,
            "proxy_used": r.proxy_used or None,
            "searched_at": searched_at,
        }
        if not r.positions:
            records.append({**base, "ad_id": None, "position": None})
            continue
        for ad_id, rank in r.positions.items():
            records.append({**base, "ad_id": ad_id, "position": rank})
    return records


def insert_positions(records: list[dict]) -> None:
    """順位レコードを一括挿入する.

    Args:
        records: [{"city", "query", "ad_id", "position", "error", "blocked",
                   "proxy_used", "searched_at"}, ...]
    """
    if not records:
        return
    _table("positions").insert(records).execute()
    logger.info("positions に %d 件挿入", len(records))
