"""ブロック・タイムアウト判定モジュール.

判定戦略:
  - timeout: 遷移失敗の原因にタイムアウトが含まれればブロック扱い（デフォルト）
  - heuristic: 上記に加え、ページタイトル・既知セレクタ・本文・iframe から
    CAPTCHA / Cloudflare / IP 制限を検出する
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from avito_rank.models import AttemptOutcome, ErrorKind

logger = logging.getLogger(__name__)

_TITLE_MARKERS = ("captcha", "recaptcha")
_TITLE_MARKERS_EXACT = ("Доступ ограничен",)

# 理由名 -> CSS セレクタ
BLOCK_SELECTORS = {
    "captcha": ".captcha, [data-captcha]",
    "recaptcha": ".g-recaptcha, iframe[src*='recaptcha']",
    "cloudflare": "#challenge-error-title, .cf-error-title",
    "avito_block": "[data-marker*='captcha'], [data-marker*='block']",
}

BLOCK_TEXT_INDICATORS = (
    "recaptcha",
    "captcha",
    "cloudflare",
    "подтвердите что вы не робот",
    "проблема с ip",
    "доступ ограничен",
    "ваш ip адрес",
    "ip address",
)


def detect_block(title: str, html: str) -> str | None:
    """タイトルと HTML からブロックページかどうかを判定する.

    Returns:
        ブロック理由（例: "selector: captcha"）。ブロックでなければ None。
    """
    lowered_title = title.lower()
    if any(m in lowered_title for m in _TITLE_MARKERS) or any(
        m in title for m in _TITLE_MARKERS_EXACT
    ):
        return f"page_title: {title}"

    soup = BeautifulSoup(html, "html.parser")

    for reason, selector in BLOCK_SELECTORS.items():
        if soup.select_one(selector) is not None:
            return f"selector: {reason}"

    body = soup.body or soup
    content = body.get_text(" ", strip=True).lower()
    for indicator in BLOCK_TEXT_INDICATORS:
        if indicator in content:
            return f"text_content: {indicator}"

    for iframe in soup.find_all("iframe"):
        src = iframe.get("src") or ""
        if "recaptcha" in src or "captcha" in src:
            return f"iframe_src: {src}"

    return None


class TimeoutBlockClassifier:
    """遷移結果だけを見る最小の判定器."""

    name = "timeout"

    def classify_navigation(
        self, error: PlaywrightError, current_url: str
    ) -> AttemptOutcome:
        """ページ遷移の失敗を分類する."""
        cause = str(error)
        if current_url.strip() and current_url != "about:blank":
            outcome = AttemptOutcome(
                error_kind=ErrorKind.PARTIAL_LOAD_TIMEOUT,
                error="ページは部分的に読み込まれましたが、タイムアウトしました",
            )
        else:
            outcome = AttemptOutcome(
                error_kind=ErrorKind.NAVIGATION_FAILED,
                error=f"ページへの遷移に失敗しました: {cause}",
            )

        # タイムアウトはブロックの兆候として扱う
        if isinstance(error, PlaywrightTimeoutError) or "timeout" in cause.lower():
            outcome.blocked = True
        return outcome

    async def inspect_page(self, page) -> str | None:
        return None


class HeuristicBlockClassifier(TimeoutBlockClassifier):
    """ページ内容からもブロックを検出する判定器."""

    name = "heuristic"

    async def inspect_page(self, page) -> str | None:
        try:
            title = await page.title()
            html = await page.content()
        except PlaywrightError as e:
            logger.warning("ブロック判定用のページ内容取得に失敗: %s", e)
            return None

        reason = detect_block(title, html)
        if reason:
            logger.warning("ブロックを検出: %s", reason)
        return reason


CLASSIFIERS = {
    TimeoutBlockClassifier.name: TimeoutBlockClassifier,
    HeuristicBlockClassifier.name: HeuristicBlockClassifier,
}


def get_classifier(name: str) -> TimeoutBlockClassifier:
    """設定名から判定器を返す. 未知の名前はデフォルトに戻す."""
    cls = CLASSIFIERS.get(name)
    if cls is None:
        logger.warning("未知の block_detection: %s。timeout を使用します", name)
        cls = TimeoutBlockClassifier
    return cls()
