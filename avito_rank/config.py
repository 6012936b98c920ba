"""設定モジュール — 環境変数・定数・実行設定の定義."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

# .env は実行ディレクトリに配置
load_dotenv(find_dotenv(usecwd=True))

# --- 設定ファイル ---
CONFIG_PATH = Path(os.environ.get("AVITO_RANK_CONFIG", "config.json"))

# --- Supabase（任意） ---
SUPABASE_URL: str = os.environ.get("SUPABASE_URL", "")
SUPABASE_SECRET_KEY: str = os.environ.get("SUPABASE_SECRET_KEY", "")

# --- Avito 検索 ---
SEARCH_URL_TEMPLATE = "https://www.avito.ru/{slug}?q={query}"
ITEM_SELECTOR = "[data-item-id]"
ITEM_ID_ATTRIBUTE = "data-item-id"

# --- 順位 ---
SCAN_CAP = 50
NOT_FOUND = "50+"

# --- タイムアウト・待機 ---
RETRY_BACKOFF_SECONDS = 5
SELECTOR_TIMEOUT_MS = 10_000
HEADFUL_NAV_TIMEOUT_MS = 15_000
SCROLL_STEPS = 3

# --- User-Agent ---
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36",
]
ACCEPT_LANGUAGE = "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7"

# --- ブラウザ ---
LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
]

# navigator の自動化痕跡を隠す
INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['ru-RU', 'ru', 'en'] });
window.chrome = { runtime: {} };
"""

SCROLL_SCRIPT = """() => {
    if (document.body && document.body.scrollHeight) {
        window.scrollBy(0, document.body.scrollHeight / 3);
        return {success: true, height: document.body.scrollHeight};
    }
    return {success: false, height: 0};
}"""


# --- ログ ---
def log_dir() -> Path:
    """ログ出力先. AVITO_RANK_LOG_DIR が無ければ実行ディレクトリ直下の logs."""
    return Path(os.environ.get("AVITO_RANK_LOG_DIR") or Path.cwd() / "logs")


@dataclass
class Settings:
    """実行設定. config.json の内容に対応する."""

    timeout: int = 30  # 秒
    max_workers: int = 3
    min_delay: float = 3  # 秒
    max_delay: float = 10  # 秒
    headless: bool = True
    proxies: list[str] = field(default_factory=list)
    max_retries: int = 2
    block_detection: str = "timeout"  # "timeout" or "heuristic"
    run_timeout: float | None = None  # 秒。None = 期限なし
    settle_delay: float = 2.0  # 秒
    scroll_pause: float = 1.0  # 秒

    @property
    def nav_timeout_ms(self) -> float:
        """ページ遷移のタイムアウト（ミリ秒）."""
        if not self.headless:
            return HEADFUL_NAV_TIMEOUT_MS
        return self.timeout * 1000


# 各キーで受け付ける型
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "timeout": (int,),
    "max_workers": (int,),
    "min_delay": (int, float),
    "max_delay": (int, float),
    "headless": (bool,),
    "proxies": (list,),
    "max_retries": (int,),
    "block_detection": (str,),
    "run_timeout": (int, float, type(None)),
    "settle_delay": (int, float),
    "scroll_pause": (int, float),
}


def load_settings(path: Path | str = CONFIG_PATH) -> Settings:
    """設定ファイルを読み込む.

    ファイルが無い・JSON として読めない場合はデフォルト値で続行する。
    ファイルに無いキーはデフォルト値のまま。
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("設定ファイル読み込み失敗: %s (%s)。デフォルト値を使用します", path, e)
        return Settings()

    if not isinstance(raw, dict):
        logger.warning("設定ファイルの形式が不正です: %s。デフォルト値を使用します", path)
        return Settings()

    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("未知の設定キーを無視: %s", key)
            continue
        # bool は int のサブクラスなので数値キーでは弾く
        expected = _FIELD_TYPES[key]
        if not isinstance(value, expected) or (
            isinstance(value, bool) and bool not in expected
        ):
            logger.warning("設定値の型が不正なためデフォルトを使用: %s=%r", key, value)
            continue
        values[key] = value

    if "proxies" in values:
        values["proxies"] = [p for p in values["proxies"] if isinstance(p, str)]

    settings = Settings(**values)
    if settings.max_delay < settings.min_delay:
        logger.warning(
            "max_delay (%s) が min_delay (%s) より小さいため揃えます",
            settings.max_delay, settings.min_delay,
        )
        settings.max_delay = settings.min_delay
    return settings
