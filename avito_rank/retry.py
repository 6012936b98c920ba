"""都市単位のリトライ制御."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from avito_rank import config
from avito_rank.models import AttemptOutcome, City, PositionResult

logger = logging.getLogger(__name__)


async def attempt_with_retry(
    attempt: Callable[[], Awaitable[AttemptOutcome]],
    city: City,
    max_retries: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    log: logging.Logger | logging.LoggerAdapter = logger,
) -> PositionResult:
    """取得試行を最大 max_retries 回まで再試行する.

    2 回目以降は attempt × RETRY_BACKOFF_SECONDS 秒待ってから実行する。
    ブロック・タイムアウト以外の失敗は再試行しない。
    """
    outcome = AttemptOutcome()
    for n in range(max(max_retries, 0) + 1):
        if n > 0:
            delay = n * config.RETRY_BACKOFF_SECONDS
            log.info("リトライ %d 回目: city=%s, %d 秒後", n, city.name, delay)
            await sleep(delay)

        outcome = await attempt()
        if not outcome.retryable:
            break

        log.warning("試行 %d 失敗: city=%s, error=%s", n, city.name, outcome.error)

    return outcome.to_result(city)
