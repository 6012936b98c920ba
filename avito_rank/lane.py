"""プロキシ単位のレーン処理.

1 レーン = 1 プロキシ（またはプロキシなし）に紐づくブラウザコンテキスト。
レーン内の都市はランダムな間隔を空けて順番に処理する。
"""

from __future__ import annotations

import asyncio
import logging
import random
from functools import partial
from urllib.parse import unquote, urlsplit

from playwright.async_api import Error as PlaywrightError

from avito_rank.classifier import TimeoutBlockClassifier
from avito_rank.config import INIT_SCRIPT, Settings
from avito_rank.models import City, PositionResult, SearchRequest
from avito_rank.retry import attempt_with_retry
from avito_rank.scraper import Sleep, fetch_city_positions

logger = logging.getLogger(__name__)


def distribute_cities(cities: list[City], proxies: list[str]) -> dict[str, list[City]]:
    """都市をプロキシにラウンドロビンで割り当てる.

    プロキシが無ければ全都市を空文字キーのレーンに入れる。
    """
    if not proxies:
        return {"": list(cities)}

    groups: dict[str, list[City]] = {proxy: [] for proxy in proxies}
    for i, city in enumerate(cities):
        groups[proxies[i % len(proxies)]].append(city)
    return groups


def parse_proxy(proxy: str) -> dict[str, str]:
    """プロキシ URL を Playwright の proxy 設定に変換する.

    Raises:
        ValueError: スキームまたはホストが無い、ポートが不正な場合
    """
    parts = urlsplit(proxy.strip())
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"スキームまたはホストがありません: {proxy}")

    _ = parts.port  # 不正なポートはここで ValueError
    # IPv6 の角括弧を残すため netloc から認証情報だけを除く
    host = parts.netloc.rpartition("@")[2]

    settings = {"server": f"{parts.scheme}://{host}"}
    if parts.username is not None:
        settings["username"] = unquote(parts.username)
    if parts.password is not None:
        settings["password"] = unquote(parts.password)
    return settings


class LaneLogger(logging.LoggerAdapter):
    """メッセージの先頭にレーン名を付けるロガー."""

    def process(self, msg, kwargs):
        return f"[{self.extra['lane']}] {msg}", kwargs


class LaneWorker:
    """1 レーン分の都市を順番に処理する."""

    def __init__(
        self,
        proxy: str,
        cities: list[City],
        request: SearchRequest,
        settings: Settings,
        classifier: TimeoutBlockClassifier,
        rng: random.Random,
        sleep: Sleep = asyncio.sleep,
    ):
        self.proxy = proxy
        self.proxy_used = proxy
        self.pending = list(cities)
        self.request = request
        self.settings = settings
        self.classifier = classifier
        self.rng = rng
        self.sleep = sleep
        self.warnings: list[str] = []
        self.log = LaneLogger(logger, {"lane": proxy or "direct"})

    async def run(self, browser, results: asyncio.Queue) -> None:
        """レーンの全都市を処理し、結果をキューに入れる."""
        if not self.pending:
            return

        try:
            context = await self._create_context(browser)
        except PlaywrightError as e:
            self.log.error("ブラウザコンテキストを作成できません: %s", e)
            await self.fail_pending(results, f"ブラウザコンテキストを作成できませんでした: {e}")
            return

        try:
            await self._install_init_script(context)
            while self.pending:
                city = self.pending[0]
                delay = self.rng.uniform(self.settings.min_delay, self.settings.max_delay)
                self.log.info("%.1f 秒待機: city=%s", delay, city.name)
                await self.sleep(delay)

                result = await attempt_with_retry(
                    partial(self._attempt, context, city),
                    city,
                    self.settings.max_retries,
                    sleep=self.sleep,
                    log=self.log,
                )
                result.proxy_used = self.proxy_used
                await results.put(result)
                self.pending.pop(0)
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                self.warnings.append(f"コンテキストのクローズに失敗: {e}")
                self.log.warning("コンテキストのクローズに失敗: %s", e)

    async def fail_pending(self, results: asyncio.Queue, message: str) -> None:
        """未処理の都市すべてに失敗結果を出す."""
        while self.pending:
            city = self.pending.pop(0)
            await results.put(
                PositionResult(city=city.name, error=message, proxy_used=self.proxy_used)
            )

    async def _create_context(self, browser):
        if not self.proxy:
            return await browser.new_context()

        try:
            proxy_settings = parse_proxy(self.proxy)
        except ValueError as e:
            self.log.warning("プロキシ解析失敗: %s。プロキシなしで続行します", e)
            self.proxy_used = ""
            return await browser.new_context()

        self.log.info("プロキシ付きコンテキストを作成: %s", proxy_settings["server"])
        return await browser.new_context(proxy=proxy_settings)

    async def _install_init_script(self, context) -> None:
        try:
            await context.add_init_script(INIT_SCRIPT)
        except PlaywrightError as e:
            self.warnings.append(f"init script 追加失敗: {e}")
            self.log.warning("init script 追加失敗: %s", e)

    async def _attempt(self, context, city: City):
        return await fetch_city_positions(
            context,
            city,
            self.request.query,
            self.request.ad_ids,
            self.settings,
            self.classifier,
            self.rng,
            self.warnings,
            sleep=self.sleep,
        )
