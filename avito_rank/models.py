"""データモデル定義."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class City:
    """検索対象の都市."""

    name: str
    slug: str  # URL パスセグメント (例: moskva)


@dataclass(frozen=True)
class SearchRequest:
    """標準入力で受け取る検索条件."""

    cities: list[City]
    ad_ids: list[int]
    query: str


class ErrorKind(str, Enum):
    """1 回の取得試行の失敗種別."""

    PAGE_CREATE = "page_create"
    PARTIAL_LOAD_TIMEOUT = "partial_load_timeout"
    NAVIGATION_FAILED = "navigation_failed"
    BLOCKED = "blocked"
    SELECTOR_WAIT = "selector_wait"
    QUERY_FAILED = "query_failed"
    NO_LISTINGS = "no_listings"


# リトライ対象となるタイムアウト系の失敗
TIMEOUT_KINDS = frozenset({ErrorKind.PARTIAL_LOAD_TIMEOUT})


@dataclass
class AttemptOutcome:
    """1 回の取得試行の結果. 都市の最終結果を決めるためだけに使う."""

    positions: dict[int, str] = field(default_factory=dict)
    error_kind: ErrorKind | None = None
    error: str = ""
    blocked: bool = False

    @property
    def failed(self) -> bool:
        return self.error_kind is not None

    @property
    def retryable(self) -> bool:
        """ブロック判定またはタイムアウト系の失敗のみリトライする."""
        return self.failed and (self.blocked or self.error_kind in TIMEOUT_KINDS)

    def to_result(self, city: City) -> PositionResult:
        return PositionResult(
            city=city.name,
            positions=dict(self.positions),
            error=self.error,
            blocked=self.blocked,
        )


@dataclass
class PositionResult:
    """1 都市分の出力レコード."""

    city: str
    positions: dict[int, str] = field(default_factory=dict)  # ad_id -> 順位 or "50+"
    error: str = ""
    proxy_used: str = ""
    blocked: bool = False

    def to_dict(self) -> dict:
        """JSON 出力用の dict. 空の error / proxy_used と False の blocked は省く."""
        data: dict = {
            "city": self.city,
            "positions": {str(ad_id): rank for ad_id, rank in self.positions.items()},
        }
        if self.error:
            data["error"] = self.error
        if self.proxy_used:
            data["proxy_used"] = self.proxy_used
        if self.blocked:
            data["blocked"] = True
        return data


def parse_search_input(text: str) -> SearchRequest:
    """標準入力の JSON を検索条件に変換する.

    Raises:
        ValueError: JSON として読めない、または必須項目の型が不正な場合
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("入力は JSON オブジェクトである必要があります")

    cities = data.get("cities", [])
    ad_ids = data.get("ad_ids", [])
    query = data.get("query", "")

    if not isinstance(cities, list) or not all(isinstance(c, str) for c in cities):
        raise ValueError("cities は文字列の配列である必要があります")
    if not isinstance(ad_ids, list) or not all(
        isinstance(a, int) and not isinstance(a, bool) for a in ad_ids
    ):
        raise ValueError("ad_ids は整数の配列である必要があります")
    if not isinstance(query, str):
        raise ValueError("query は文字列である必要があります")

    return SearchRequest(
        cities=[City(name=slug, slug=slug) for slug in cities],
        ad_ids=ad_ids,
        query=query,
    )
