"""Avito 検索結果のスクレイピングモジュール.

1 回の取得試行:
  1. 新しいページを開き、ランダムな User-Agent を設定
  2. 検索 URL へ遷移（失敗は判定器で分類）
  3. 一覧のセレクタを待ち、スクロールで遅延読み込みを促す
  4. 先頭 50 件の data-item-id から対象広告の順位を求める
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError

from avito_rank.classifier import TimeoutBlockClassifier
from avito_rank.config import (
    ACCEPT_LANGUAGE,
    ITEM_ID_ATTRIBUTE,
    ITEM_SELECTOR,
    NOT_FOUND,
    SCAN_CAP,
    SCROLL_SCRIPT,
    SCROLL_STEPS,
    SEARCH_URL_TEMPLATE,
    SELECTOR_TIMEOUT_MS,
    USER_AGENTS,
    Settings,
)
from avito_rank.models import AttemptOutcome, City, ErrorKind

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r"[+-]?[0-9]+")

Sleep = Callable[[float], Awaitable[None]]


def build_search_url(city: City, query: str) -> str:
    """都市とクエリから検索 URL を組み立てる."""
    return SEARCH_URL_TEMPLATE.format(slug=city.slug, query=query.replace(" ", "+"))


def extract_positions(
    item_ids: list[str | None], target_ids: list[int], scan_cap: int = SCAN_CAP
) -> dict[int, str]:
    """一覧の ID 列から対象広告の順位を求める.

    Args:
        item_ids: 表示順の data-item-id 値（取得できなければ None）
        target_ids: 順位を調べる広告 ID
        scan_cap: 走査する最大件数

    Returns:
        {広告ID: 順位文字列}。走査範囲で見つからなければ "50+"。
    """
    targets = set(target_ids)
    found: dict[int, str] = {}

    for pos, raw in enumerate(item_ids[:scan_cap], start=1):
        # 数値でない ID は順位を持たないが、走査位置は消費する
        if raw is None or not _NUMERIC_ID.fullmatch(raw):
            continue
        item_id = int(raw)
        if item_id in targets and item_id not in found:
            found[item_id] = str(pos)

    return {target: found.get(target, NOT_FOUND) for target in target_ids}


async def read_item_ids(items: list, scan_cap: int = SCAN_CAP) -> list[str | None]:
    """要素リストの先頭 scan_cap 件から ID 属性を読む."""
    ids: list[str | None] = []
    for item in items[:scan_cap]:
        try:
            ids.append(await item.get_attribute(ITEM_ID_ATTRIBUTE))
        except PlaywrightError:
            ids.append(None)
    return ids


async def scroll_page(
    page, steps: int, pause: float, sleep: Sleep, warnings: list[str]
) -> None:
    """ページを段階的にスクロールして遅延読み込みを促す."""
    for _ in range(steps):
        try:
            result = await page.evaluate(SCROLL_SCRIPT)
        except PlaywrightError as e:
            warnings.append(f"スクロール失敗: {e}")
            logger.warning("スクロール失敗: %s", e)
        else:
            if isinstance(result, dict) and result.get("success"):
                logger.debug("スクロール完了: height=%s", result.get("height"))
        await sleep(pause)


async def fetch_city_positions(
    context,
    city: City,
    query: str,
    ad_ids: list[int],
    settings: Settings,
    classifier: TimeoutBlockClassifier,
    rng: random.Random,
    warnings: list[str],
    sleep: Sleep = asyncio.sleep,
) -> AttemptOutcome:
    """1 都市分の検索ページを 1 回取得し、順位を求める."""
    try:
        page = await context.new_page()
    except PlaywrightError as e:
        return AttemptOutcome(
            error_kind=ErrorKind.PAGE_CREATE,
            error=f"ページを作成できませんでした: {e}",
        )

    try:
        return await _fetch_on_page(
            page, city, query, ad_ids, settings, classifier, rng, warnings, sleep
        )
    finally:
        try:
            await page.close()
        except PlaywrightError as e:
            warnings.append(f"ページのクローズに失敗: {e}")
            logger.warning("ページのクローズに失敗: %s", e)


async def _fetch_on_page(
    page,
    city: City,
    query: str,
    ad_ids: list[int],
    settings: Settings,
    classifier: TimeoutBlockClassifier,
    rng: random.Random,
    warnings: list[str],
    sleep: Sleep,
) -> AttemptOutcome:
    try:
        await page.set_extra_http_headers({
            "User-Agent": rng.choice(USER_AGENTS),
            "Accept-Language": ACCEPT_LANGUAGE,
        })
    except PlaywrightError as e:
        warnings.append(f"ヘッダー設定失敗: {e}")
        logger.warning("ヘッダー設定失敗: %s", e)

    url = build_search_url(city, query)
    logger.info("検索中: city=%s, url=%s", city.name, url)

    try:
        await page.goto(
            url, timeout=settings.nav_timeout_ms, wait_until="domcontentloaded"
        )
    except PlaywrightError as e:
        outcome = classifier.classify_navigation(e, page.url or "")
        logger.warning("遷移失敗: city=%s, error=%s", city.name, e)
        return outcome

    await sleep(settings.settle_delay)

    reason = await classifier.inspect_page(page)
    if reason:
        return AttemptOutcome(
            error_kind=ErrorKind.BLOCKED,
            error=f"ブロックを検出しました: {reason}",
            blocked=True,
        )

    try:
        await page.wait_for_selector(ITEM_SELECTOR, timeout=SELECTOR_TIMEOUT_MS)
    except PlaywrightError:
        return AttemptOutcome(
            error_kind=ErrorKind.SELECTOR_WAIT,
            error="広告一覧の表示を待機できませんでした",
        )

    await scroll_page(page, SCROLL_STEPS, settings.scroll_pause, sleep, warnings)

    try:
        items = await page.query_selector_all(ITEM_SELECTOR)
    except PlaywrightError as e:
        return AttemptOutcome(
            error_kind=ErrorKind.QUERY_FAILED,
            error=f"広告一覧を取得できませんでした: {e}",
        )
    if not items:
        return AttemptOutcome(
            error_kind=ErrorKind.NO_LISTINGS,
            error="ページに広告が見つかりませんでした",
        )

    item_ids = await read_item_ids(items)
    positions = extract_positions(item_ids, ad_ids)
    logger.info("検索結果: city=%s, %d 件の広告を走査", city.name, len(item_ids))
    return AttemptOutcome(positions=positions)
