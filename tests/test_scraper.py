"""scraper モジュールのユニットテスト."""

import asyncio
import random

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from avito_rank.classifier import HeuristicBlockClassifier, TimeoutBlockClassifier
from avito_rank.config import Settings
from avito_rank.models import City, ErrorKind
from avito_rank.scraper import build_search_url, extract_positions, fetch_city_positions
from tests.fakes import FakeContext, FakePage, no_sleep

MOSCOW = City(name="moskva", slug="moskva")


def _fetch(context, ad_ids=(111, 222), classifier=None, settings=None, warnings=None):
    return asyncio.run(fetch_city_positions(
        context,
        MOSCOW,
        "ноутбук",
        list(ad_ids),
        settings or Settings(),
        classifier or TimeoutBlockClassifier(),
        random.Random(0),
        warnings if warnings is not None else [],
        sleep=no_sleep,
    ))


class TestBuildSearchUrl:
    """build_search_url のテスト."""

    def test_spaces_become_plus(self):
        url = build_search_url(City("sankt-peterburg", "sankt-peterburg"), "игровой ноутбук")
        assert url == "https://www.avito.ru/sankt-peterburg?q=игровой+ноутбук"


class TestExtractPositions:
    """extract_positions のテスト."""

    def test_found_and_not_found(self):
        positions = extract_positions(["999", "111", "333"], [111, 222])
        assert positions == {111: "2", 222: "50+"}

    def test_first_match_wins(self):
        ids = [str(1000 + i) for i in range(40)]
        ids[4] = "777"
        ids[29] = "777"
        assert extract_positions(ids, [777]) == {777: "5"}

    def test_non_numeric_consumes_position(self):
        positions = extract_positions([None, "abc", "", "111"], [111])
        assert positions == {111: "4"}

    def test_scan_cap(self):
        ids = [str(i) for i in range(1, 61)]
        positions = extract_positions(ids, [50, 51])
        assert positions == {50: "50", 51: "50+"}

    def test_signed_and_padded_ids(self):
        positions = extract_positions([" 111", "+222", "-5"], [111, 222])
        assert positions == {111: "50+", 222: "2"}

    def test_custom_scan_cap(self):
        assert extract_positions(["1", "2", "3"], [3], scan_cap=2) == {3: "50+"}

    def test_every_target_present(self):
        positions = extract_positions(["5", "6"], [6, 7, 8])
        assert set(positions) == {6, 7, 8}
        assert all(v == "50+" or 1 <= int(v) <= 50 for v in positions.values())

    def test_idempotent(self):
        ids = ["3", "x", "1", "2", "1"]
        assert extract_positions(ids, [1, 2, 4]) == extract_positions(ids, [1, 2, 4])


class TestFetchCityPositions:
    """fetch_city_positions のテスト."""

    def test_success(self):
        page = FakePage(item_ids=["999", "111", "333"])
        outcome = _fetch(FakeContext([page]))

        assert not outcome.failed
        assert outcome.positions == {111: "2", 222: "50+"}
        assert page.visited == ["https://www.avito.ru/moskva?q=ноутбук"]
        assert page.headers["Accept-Language"].startswith("ru-RU")
        assert page.closed

    def test_no_listings(self):
        page = FakePage(item_ids=[])
        outcome = _fetch(FakeContext([page]))

        assert outcome.error_kind == ErrorKind.NO_LISTINGS
        assert outcome.error
        assert outcome.positions == {}
        assert not outcome.blocked
        assert not outcome.retryable

    def test_selector_wait_failure_is_terminal(self):
        page = FakePage(selector_error=PlaywrightTimeoutError("Timeout 10000ms exceeded"))
        outcome = _fetch(FakeContext([page]))

        assert outcome.error_kind == ErrorKind.SELECTOR_WAIT
        assert not outcome.blocked
        assert not outcome.retryable

    def test_navigation_timeout_is_blocked(self):
        page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        outcome = _fetch(FakeContext([page]))

        assert outcome.error_kind == ErrorKind.NAVIGATION_FAILED
        assert outcome.blocked
        assert outcome.retryable
        assert page.closed

    def test_page_create_failure(self):
        outcome = _fetch(FakeContext([]))

        assert outcome.error_kind == ErrorKind.PAGE_CREATE
        assert not outcome.retryable

    def test_header_failure_is_warning(self):
        page = FakePage(item_ids=["111"], header_error=PlaywrightError("closed"))
        warnings: list[str] = []
        outcome = _fetch(FakeContext([page]), warnings=warnings)

        assert outcome.positions == {111: "1", 222: "50+"}
        assert len(warnings) == 1

    def test_heuristic_classifier_detects_captcha(self):
        page = FakePage(
            item_ids=["111"],
            html='<html><body><div class="captcha">x</div></body></html>',
        )
        outcome = _fetch(FakeContext([page]), classifier=HeuristicBlockClassifier())

        assert outcome.error_kind == ErrorKind.BLOCKED
        assert outcome.blocked
        assert "selector: captcha" in outcome.error
