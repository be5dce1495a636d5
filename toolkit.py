"""
小ツール共通の「I/Oまわり」部品集（toolkit）

狙い：
- trebuchet 本体は「1文字ずつ読んで足す」ことに集中させる
- logger構成、エラー表示、.env / 環境変数の読み取り、JSON保存、HTTP POST は
  どのツールでも同じ意味で使えるので、ここにまとめる

注意：
- 変数名（TREBUCHET_*）や payload の形はツール固有なので、ここには置かない
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, TextIO

import httpx


def report_error(prog: str, message: str, stream: TextIO | None = None) -> None:
    """
    致命的なエラーを「プログラム名: メッセージ」の形で stderr に出す。

    プログラム名はグローバル変数に持たせず、呼び出し側から毎回渡してもらう。
    （どこから呼ばれても同じ名前が出るとは限らない。テストでも差し替えやすい）
    """
    out = stream if stream is not None else sys.stderr
    print(f"{prog}: {message}", file=out)


def parse_provided_options(argv: list[str]) -> set[str]:
    """
    CLI で明示された --option の名前だけを集める。

    `--timeout=3` のような書き方も `--timeout` として扱う。
    config/env は「ここに入っていない項目」だけを埋めてよい。
    """
    provided: set[str] = set()
    for token in argv:
        if token == "--":
            break
        if token.startswith("--"):
            provided.add(token.split("=", 1)[0])
    return provided


_TRUE_WORDS = {"1", "true", "yes", "y", "on"}
_FALSE_WORDS = {"0", "false", "no", "n", "off", ""}


def parse_bool(value: str) -> bool:
    """
    env / config の文字列を bool にする。

    true系: 1, true, yes, y, on
    false系: 0, false, no, n, off, 空文字
    どちらでもない文字列は ValueError（"ture" みたいな typo を黙って True にしない）
    """
    v = value.strip().lower()
    if v in _TRUE_WORDS:
        return True
    if v in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def load_env_file(path: Path, logger: logging.Logger) -> dict[str, str]:
    """
    .env 形式（KEY=VALUE の行の集まり）を辞書にする。

    - 空行と # コメントは読み飛ばす
    - `export KEY=VALUE` も受け付ける
    - 値を囲む ' か " は1組だけ剥がす
    - `=` が無い行は壊れた行として無視する

    読めなかったときはログを出して空の辞書を返す（.env が無いだけで落とさない）。
    """
    try:
        text = path.expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("env file load failed: %s (%s)", path, exc)
        return {}

    env: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, val = line.partition("=")
        if not sep:
            logger.info("env file %s:%d ignored (no '=')", path, lineno)
            continue
        key = key.strip()
        val = val.strip()
        if len(val) >= 2 and val[0] == val[-1] and val[0] in "'\"":
            val = val[1:-1]
        if key:
            env[key] = val
    return env


def get_env(name: str, env_file: dict[str, str]) -> str | None:
    """
    環境変数を1つ取り出す。

    優先順位は .env（--env-file） > OS環境変数。
    空文字は「未設定」と同じ扱いにして None を返す。
    """
    for source in (env_file, os.environ):
        v = source.get(name)
        if v:
            return v
    return None


def setup_logger(name: str, verbose: bool) -> logging.Logger:
    """
    stderr に出すだけの logger を作る。

    stdout は結果（`Sum = N` や JSON）専用にしたいので、
    進捗や警告は全部 stderr に寄せる。何度呼んでもハンドラは1つだけ。
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False
    logger.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    return logger


def write_json_file(path: Path, payload: dict[str, Any], logger: logging.Logger) -> bool:
    """payload を JSON ファイルに書く。成功なら True、失敗はログを出して False。"""
    out_path = path.expanduser()
    try:
        out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("failed to write payload to %s: %s", out_path, exc)
        return False
    logger.info("payload written to %s", out_path)
    return True


def post_json(url: str, payload: dict[str, Any], timeout: float, logger: logging.Logger) -> bool:
    """
    payload を JSON として POST する。

    - 4xx/5xx は失敗扱い（レスポンス本文の先頭だけ warning に出す）
    - 接続できない・タイムアウトなども失敗扱い
    - どちらの場合も例外は外に出さず False を返す（stdout は汚さない）
    """
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        logger.error("HTTP POST failed: %s (%s)", url, exc)
        return False

    logger.info("POST %s -> %d", url, resp.status_code)
    if resp.is_error:
        logger.warning("response body (truncated): %s", resp.text[:200])
        return False
    return True
