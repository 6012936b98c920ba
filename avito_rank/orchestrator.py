"""レーンの並行実行と結果の集約."""

from __future__ import annotations

import asyncio
import logging
import random

from avito_rank.classifier import TimeoutBlockClassifier, get_classifier
from avito_rank.config import Settings
from avito_rank.lane import LaneWorker, distribute_cities
from avito_rank.models import PositionResult, SearchRequest
from avito_rank.scraper import Sleep

logger = logging.getLogger(__name__)

_DONE = None


async def collect_positions(
    browser,
    request: SearchRequest,
    settings: Settings,
    classifier: TimeoutBlockClassifier | None = None,
    rng: random.Random | None = None,
    sleep: Sleep = asyncio.sleep,
) -> list[PositionResult]:
    """全都市の順位を取得する.

    レーンごとにタスクを起動し、共有キューから到着順に結果を集める。
    戻り値には入力の各都市がちょうど 1 件ずつ含まれる。
    """
    if classifier is None:
        classifier = get_classifier(settings.block_detection)
    if rng is None:
        rng = random.Random()

    lanes = distribute_cities(request.cities, settings.proxies)
    workers = [
        LaneWorker(
            proxy,
            cities,
            request,
            settings,
            classifier,
            random.Random(rng.getrandbits(64)),
            sleep=sleep,
        )
        for proxy, cities in lanes.items()
    ]
    logger.info(
        "レーン数: %d, 都市数: %d, 同時実行数: %d",
        len(workers), len(request.cities), settings.max_workers,
    )

    # 生産者が詰まらないよう都市数 + 終了マーカー分の容量を確保する
    results: asyncio.Queue = asyncio.Queue(maxsize=len(request.cities) + 1)
    semaphore = asyncio.Semaphore(max(settings.max_workers, 1))

    async def run_lane(worker: LaneWorker) -> None:
        async with semaphore:
            await worker.run(browser, results)

    tasks = [asyncio.create_task(run_lane(w)) for w in workers]

    async def watch() -> None:
        try:
            outcomes = await asyncio.wait_for(
                asyncio.gather(*tasks, return_exceptions=True), settings.run_timeout
            )
        except asyncio.TimeoutError:
            logger.error("実行期限 (%s 秒) を超えたため残りのレーンを中断しました",
                         settings.run_timeout)
        else:
            for worker, outcome in zip(workers, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("レーン異常終了: proxy=%s", worker.proxy or "direct",
                                 exc_info=outcome)
        for worker in workers:
            await worker.fail_pending(results, "処理が完了しませんでした")
        await results.put(_DONE)

    watcher = asyncio.create_task(watch())

    collected: list[PositionResult] = []
    while True:
        result = await results.get()
        if result is _DONE:
            break
        collected.append(result)
    await watcher

    return collected
