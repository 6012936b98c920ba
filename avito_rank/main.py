"""Avito 検索順位取得 — メインエントリーポイント.

処理フロー:
  1. 設定ファイル（無ければデフォルト）と標準入力の検索条件を読む
  2. 都市をプロキシごとのレーンに振り分ける
  3. レーンごとに並行して各都市を検索し、対象広告の順位を求める
  4. 全結果を JSON で標準出力に書く
  5. Supabase が設定されていれば結果を保存する
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from datetime import datetime, timezone

from playwright.async_api import async_playwright

from avito_rank import db
from avito_rank.config import CONFIG_PATH, LAUNCH_ARGS, Settings, log_dir, load_settings
from avito_rank.models import PositionResult, SearchRequest, parse_search_input
from avito_rank.orchestrator import collect_positions


def setup_logging() -> None:
    """ロギングの初期設定. 標準出力は結果 JSON 専用なので stderr に出す."""
    directory = log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / f"collector_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


async def scrape(request: SearchRequest, settings: Settings) -> list[PositionResult]:
    """ブラウザを起動して全都市の順位を取得する."""
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=settings.headless, args=LAUNCH_ARGS)
        try:
            return await collect_positions(browser, request, settings)
        finally:
            await browser.close()


def save_results(results: list[PositionResult], query: str, searched_at: str) -> None:
    """結果を DB に保存する. 失敗してもログのみ."""
    logger = logging.getLogger(__name__)
    if not db.is_configured():
        return
    records = db.build_position_records(results, query, searched_at)
    try:
        db.insert_positions(records)
    except Exception:
        logger.exception("DB 書き込み失敗: %d 件", len(records))


def run() -> None:
    """メイン処理."""
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("=== 検索順位取得 開始 ===")
    start_time = time.time()

    settings = load_settings(CONFIG_PATH)

    try:
        request = parse_search_input(sys.stdin.read())
    except ValueError as e:
        logger.critical("標準入力の検索条件を読み込めません: %s", e)
        sys.exit(1)

    logger.info("都市: %d 件, 広告: %d 件, クエリ: %s",
                len(request.cities), len(request.ad_ids), request.query)

    searched_at = datetime.now(timezone.utc).isoformat()
    results = asyncio.run(scrape(request, settings))

    print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))

    save_results(results, request.query, searched_at)

    # サマリ
    error_count = sum(1 for r in results if r.error)
    blocked_count = sum(1 for r in results if r.blocked)
    elapsed = time.time() - start_time
    logger.info("=== 検索順位取得 完了 ===")
    logger.info("都市: %d 件, エラー: %d 件, ブロック: %d 件, 所要時間: %.1f 秒",
                len(results), error_count, blocked_count, elapsed)


if __name__ == "__main__":
    run()
