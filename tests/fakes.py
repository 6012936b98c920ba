"""レンダラー（Playwright）の代替となるインメモリ実装."""

from __future__ import annotations

from playwright.async_api import Error as PlaywrightError


async def no_sleep(seconds: float) -> None:
    return None


class SleepRecorder:
    """待機秒数を記録するだけの sleep."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeElement:
    def __init__(self, item_id: str | None):
        self.item_id = item_id

    async def get_attribute(self, name: str) -> str | None:
        return self.item_id


class FakePage:
    """1 回分の検索ページ.

    Args:
        item_ids: 一覧に並ぶ data-item-id 値
        goto_error: goto で送出する例外
        url_after_error: goto 失敗後の page.url
        selector_error: wait_for_selector で送出する例外
    """

    def __init__(
        self,
        item_ids=(),
        goto_error: Exception | None = None,
        url_after_error: str = "about:blank",
        selector_error: Exception | None = None,
        title: str = "Avito",
        html: str = "<html><body></body></html>",
        header_error: Exception | None = None,
    ):
        self.item_ids = list(item_ids)
        self.goto_error = goto_error
        self.url_after_error = url_after_error
        self.selector_error = selector_error
        self._title = title
        self._html = html
        self.header_error = header_error
        self.url = "about:blank"
        self.visited: list[str] = []
        self.headers: dict[str, str] = {}
        self.closed = False

    async def set_extra_http_headers(self, headers):
        if self.header_error:
            raise self.header_error
        self.headers = dict(headers)

    async def goto(self, url, timeout=None, wait_until=None):
        self.visited.append(url)
        if self.goto_error:
            self.url = self.url_after_error
            raise self.goto_error
        self.url = url

    async def title(self):
        return self._title

    async def content(self):
        return self._html

    async def wait_for_selector(self, selector, timeout=None):
        if self.selector_error:
            raise self.selector_error

    async def evaluate(self, script):
        return {"success": True, "height": 1000}

    async def query_selector_all(self, selector):
        return [FakeElement(i) for i in self.item_ids]

    async def close(self):
        self.closed = True


class FakeContext:
    """new_page のたびに pages から順に返すコンテキスト."""

    def __init__(self, pages=(), init_script_error: Exception | None = None):
        self.pages = list(pages)
        self.init_script_error = init_script_error
        self.init_scripts: list[str] = []
        self.opened: list[FakePage] = []
        self.closed = False

    async def add_init_script(self, script):
        if self.init_script_error:
            raise self.init_script_error
        self.init_scripts.append(script)

    async def new_page(self):
        if not self.pages:
            raise PlaywrightError("no more pages")
        page = self.pages.pop(0)
        self.opened.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    """new_context の呼び出しを記録するブラウザ.

    Args:
        context_factory: proxy 設定（None 可）を受け取りコンテキストを返す
        context_error: new_context で送出する例外
    """

    def __init__(self, context_factory=None, context_error: Exception | None = None):
        self.context_factory = context_factory or (lambda proxy: FakeContext())
        self.context_error = context_error
        self.proxy_configs: list[dict | None] = []
        self.contexts: list[FakeContext] = []

    async def new_context(self, proxy=None):
        self.proxy_configs.append(proxy)
        if self.context_error:
            raise self.context_error
        context = self.context_factory(proxy)
        self.contexts.append(context)
        return context
