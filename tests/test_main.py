"""main モジュールのテスト."""

import io
import json
from unittest.mock import patch

import pytest

from avito_rank.config import Settings
from avito_rank.models import PositionResult


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("avito_rank.main.setup_logging"):
        yield


class TestRun:
    """run のテスト."""

    @patch("avito_rank.main.save_results")
    @patch("avito_rank.main.load_settings", return_value=Settings())
    def test_writes_json(self, _settings, mock_save, capsys):
        from avito_rank import main

        async def fake_scrape(request, settings):
            return [PositionResult(city=c.name, positions={a: "50+" for a in request.ad_ids})
                    for c in request.cities]

        stdin = io.StringIO('{"cities": ["moskva"], "ad_ids": [111], "query": "ноутбук"}')
        with patch("sys.stdin", stdin), patch("avito_rank.main.scrape", fake_scrape):
            main.run()

        out = json.loads(capsys.readouterr().out)
        assert out == [{"city": "moskva", "positions": {"111": "50+"}}]
        mock_save.assert_called_once()

    @patch("avito_rank.main.load_settings", return_value=Settings())
    def test_bad_stdin_exits(self, _settings):
        from avito_rank import main

        with patch("sys.stdin", io.StringIO("{oops")), pytest.raises(SystemExit) as exc:
            main.run()
        assert exc.value.code == 1
