"""
toolkit（共通I/O部品）のテスト

狙い：
- 壊れやすい設定まわり（.env の読み方、bool変換、CLI指定の検出）を押さえる
- HTTP は本物に飛ばさず、httpx.MockTransport で成否だけ確認する
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import httpx
import pytest

import toolkit


def test_parse_bool_truthy_and_falsey() -> None:
    # テスト意図：env 文字列を bool に解釈するルール
    for v in ["1", "true", "YES", "on", " y "]:
        assert toolkit.parse_bool(v) is True
    for v in ["0", "false", "No", "off", ""]:
        assert toolkit.parse_bool(v) is False


def test_parse_bool_rejects_unknown_words() -> None:
    with pytest.raises(ValueError):
        toolkit.parse_bool("ture")


def test_parse_provided_options() -> None:
    # テスト意図：`--x=1` も `--x` として数え、位置引数や `--` 以降は数えない
    argv = ["input.txt", "--json", "--max-sum=10", "--", "--not-an-option"]
    assert toolkit.parse_provided_options(argv) == {"--json", "--max-sum"}


def test_load_env_file_parses_key_value_and_ignores_comments(tmp_path: Path) -> None:
    # テスト意図：空行/コメントは無視、export を許容、クォートを剥がす、KEY=VALUE のみ読む
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "# comment",
                "",
                "export TREBUCHET_MAX_SUM=200",
                "TREBUCHET_JSON=true",
                "TREBUCHET_OUT='out.json'",
                'TREBUCHET_POST="http://example.invalid/x=y"',
                "NO_EQUAL_SIGN",
            ]
        ),
        encoding="utf-8",
    )

    env = toolkit.load_env_file(env_path, toolkit.setup_logger("test", False))
    assert env == {
        "TREBUCHET_MAX_SUM": "200",
        "TREBUCHET_JSON": "true",
        "TREBUCHET_OUT": "out.json",
        "TREBUCHET_POST": "http://example.invalid/x=y",
    }


def test_load_env_file_missing_returns_empty(tmp_path: Path) -> None:
    assert toolkit.load_env_file(tmp_path / "nope.env", toolkit.setup_logger("test", False)) == {}


def test_get_env_prefers_env_file(monkeypatch: pytest.MonkeyPatch) -> None:
    # テスト意図：.env > OS環境変数、空文字は未設定扱い
    monkeypatch.setenv("TREBUCHET_TEST_VALUE", "from-os")
    assert toolkit.get_env("TREBUCHET_TEST_VALUE", {"TREBUCHET_TEST_VALUE": "from-file"}) == "from-file"
    assert toolkit.get_env("TREBUCHET_TEST_VALUE", {"TREBUCHET_TEST_VALUE": ""}) == "from-os"

    monkeypatch.delenv("TREBUCHET_TEST_VALUE")
    assert toolkit.get_env("TREBUCHET_TEST_VALUE", {}) is None


def test_setup_logger_levels_and_single_handler() -> None:
    logger = toolkit.setup_logger("toolkit-test", False)
    assert logger.level == logging.WARNING
    logger = toolkit.setup_logger("toolkit-test", True)
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1


def test_report_error_prefixes_program_name() -> None:
    buf = io.StringIO()
    toolkit.report_error("aoc", "something broke", stream=buf)
    assert buf.getvalue() == "aoc: something broke\n"


def test_write_json_file(tmp_path: Path) -> None:
    logger = toolkit.setup_logger("test", False)
    out = tmp_path / "payload.json"
    assert toolkit.write_json_file(out, {"sum": 142}, logger) is True
    assert json.loads(out.read_text(encoding="utf-8")) == {"sum": 142}

    assert toolkit.write_json_file(tmp_path / "missing" / "x.json", {}, logger) is False


def _mock_client(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.Client

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(toolkit.httpx, "Client", factory)


def test_post_json_success(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(201)

    _mock_client(monkeypatch, handler)
    ok = toolkit.post_json("http://collector.test/sum", {"sum": 142}, timeout=1.0, logger=toolkit.setup_logger("test", False))
    assert ok is True
    assert seen["body"] == {"sum": 142}


def test_post_json_http_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_client(monkeypatch, lambda request: httpx.Response(500, text="boom"))
    ok = toolkit.post_json("http://collector.test/sum", {}, timeout=1.0, logger=toolkit.setup_logger("test", False))
    assert ok is False


def test_post_json_connection_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _mock_client(monkeypatch, handler)
    ok = toolkit.post_json("http://collector.test/sum", {}, timeout=1.0, logger=toolkit.setup_logger("test", False))
    assert ok is False
