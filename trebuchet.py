"""
Advent of Code 2023 Day 1: Trebuchet?!（パート1）

このツールがやること（ざっくり）：
- テキスト（ファイル または 標準入力）を1文字ずつ読む
- 各行の「最初の数字」と「最後の数字」をくっつけて2桁の数（calibration value）を作る
  例: `pqr3stu8vwx` -> 38、`treb7uchet` -> 77（数字が1つなら左右とも同じ数字）
- 全行ぶんを足して `Sum = 142` のように出す

狙い：
- 「入力（I/O）→ 走査（純粋な状態遷移）→ 出力」の境界をはっきり分ける
- 1行の状態を小さな状態機械（Seen: ZERO / ONE / TWO）として書き、遷移を単体でテストできるようにする
- オーバーフロー判定を小さな純粋関数（would_overflow）に切り出して、巨大な入力なしで境界値をテストする
- エラーは例外で上に投げ、main だけが「表示して終了コードを返す」役をやる

使い方：
  cat input.txt | python trebuchet_main.py
  python trebuchet_main.py input.txt
"""

from __future__ import annotations

import argparse
import io
import json
import logging
import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, TextIO

import toolkit

LOGGER_NAME = "trebuchet"
DEFAULT_PROG = "trebuchet"

# 32bit 符号付き整数の上限。Python の int は溢れないので、上限は自分で決めて守る。
INT_MAX = 2**31 - 1


# -------------------------
# エラー（致命的なものだけ）
# -------------------------


class CalibrationError(Exception):
    """このツールの致命的エラーの基底クラス。main が捕まえて終了コードに変える。"""


class UsageError(CalibrationError):
    """位置引数（ファイル名）が2つ以上渡された。入力は一切読まない。"""

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(f"expected at most one filename, got {count}")


class FileOpenError(CalibrationError):
    """入力ファイルが開けなかった。"""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Unable to open file: {path} ({reason})")


class IntegerOverflowError(CalibrationError):
    """
    合計に次の値を足すと上限を超える。

    ラップアラウンドも飽和もさせず、その場で処理を止める。
    メッセージには「今の合計」「足そうとした値」「上限」を全部入れる。
    """

    def __init__(self, total: int, value: int, bound: int) -> None:
        self.total = total
        self.value = value
        self.bound = bound
        super().__init__(f"INTEGER OVERFLOW: {total} + {value} > {bound}")


# -------------------------
# 1行ぶんの状態（状態機械）
# -------------------------


class Seen(Enum):
    """この行で何個の数字を見たか。TWO は「2個以上」の意味。"""

    ZERO = 0
    ONE = 1
    TWO = 2


@dataclass(frozen=True)
class ScanState:
    """
    1行を走査している途中の状態DTO。

    - seen: 見た数字の個数（ZERO / ONE / TWO）
    - first: 最初に見た数字（一度決まったら、その行の間は変わらない）
    - last: 直近に見た数字
    """

    seen: Seen = Seen.ZERO
    first: int = 0
    last: int = 0


EMPTY_STATE = ScanState()


def is_digit(ch: str) -> bool:
    """
    ch が ASCII の数字（'0'〜'9'）かどうか。

    str.isdigit() は使わない：'٣'（アラビア数字）や '²' も True になってしまう。
    マルチバイト文字の扱いはこのツールの対象外なので、ASCII だけを数字と見なす。
    """
    return len(ch) == 1 and "0" <= ch <= "9"


def advance(state: ScanState, ch: str) -> ScanState:
    """
    1文字ぶん状態を進める（副作用なし）。

    遷移：
    - 数字以外: 何も変えない
    - ZERO で数字: ONE になり、first と last の両方にその数字を入れる
    - ONE / TWO で数字: TWO になり、last だけ更新する
    改行の扱い（行の終わり）は呼び出し側の責務。
    """
    if not is_digit(ch):
        return state
    digit = ord(ch) - ord("0")
    if state.seen is Seen.ZERO:
        return ScanState(seen=Seen.ONE, first=digit, last=digit)
    return ScanState(seen=Seen.TWO, first=state.first, last=digit)


def calibration_value(state: ScanState) -> int:
    """
    行が終わった時点の状態から calibration value を出す。

    数字が1個だけの行は first == last なので 11 * digit になる（これはパズルのルールどおり）。
    数字が無い行は 0（合計に何も足さない）。
    """
    if state.seen is Seen.ZERO:
        return 0
    return 10 * state.first + state.last


def line_value(line: str) -> int:
    """1行ぶんの文字列から calibration value を出す（末尾の改行はあってもなくてもよい）。"""
    state = EMPTY_STATE
    for ch in line:
        if ch == "\n":
            break
        state = advance(state, ch)
    return calibration_value(state)


def would_overflow(total: int, value: int, bound: int = INT_MAX) -> bool:
    """
    total + value が bound を超えるかどうか。

    固定幅の整数では足してから比べると手遅れなので `value > bound - total` の形で判定する。
    Python では溢れないが、同じ形にしておくと意味がそのまま読める。
    """
    return value > bound - total


# -------------------------
# 走査・計算（コアロジック）
# -------------------------


@dataclass
class Summary:
    """
    集計結果DTO。

    - total: calibration value の合計
    - lines: 読んだ行数
    - lines_without_digits: 数字が1つも無かった行数（合計には 0 として入っている）
    """

    total: int
    lines: int
    lines_without_digits: int


def iter_chars(stream: TextIO, chunk_size: int = 4096) -> Iterator[str]:
    """ストリームを先頭から1文字ずつ流す。巻き戻しはしない。"""
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield from chunk


def iter_line_states(chars: Iterable[str]) -> Iterator[ScanState]:
    """
    文字の列から「行が終わった時点の ScanState」を1行ごとにyieldする。

    - 改行で行が終わる
    - 入力の終わり（EOF）も行の終わり。最後の行に改行が無くても1行として数える
    - 最後の改行のあとに何も無ければ、そこで終わり（空の行を余分に作らない）
    """
    state = EMPTY_STATE
    pending = False
    for ch in chars:
        if ch == "\n":
            yield state
            state = EMPTY_STATE
            pending = False
            continue
        pending = True
        state = advance(state, ch)
    if pending:
        yield state


def compute_sum(
    chars: Iterable[str],
    bound: int,
    logger: logging.Logger,
    trace: bool = False,
) -> Summary:
    """
    全行の calibration value を足す。

    - 足す前に would_overflow で確かめ、超えるなら IntegerOverflowError を投げて即終了
      （それ以上は入力を読まない）
    - trace=True なら1行ごとの値を INFO ログに出す
    """
    total = 0
    lines = 0
    without_digits = 0

    for lineno, state in enumerate(iter_line_states(chars), start=1):
        value = calibration_value(state)
        if state.seen is Seen.ZERO:
            without_digits += 1
        if trace:
            logger.info("line %d: seen=%s value=%d", lineno, state.seen.name, value)

        if would_overflow(total, value, bound):
            raise IntegerOverflowError(total, value, bound)
        total += value
        lines = lineno

    return Summary(total=total, lines=lines, lines_without_digits=without_digits)


# -------------------------
# 入力（I/O境界）
# -------------------------


@contextmanager
def open_input(path: Path | None, logger: logging.Logger) -> Iterator[tuple[str, TextIO]]:
    """
    入力ストリームを開いて (表示用パス, ストリーム) を渡す。

    - path が None か '-' なら stdin（stdin は閉じない）
    - ファイルは with で開くので、オーバーフローで途中終了しても必ず閉じる
    - 開けなければ FileOpenError

    どちらも newline="" で読む：行の区切りは '\\n' だけ。
    単独の '\\r' は数字以外の文字として読み飛ばされ、'\\r\\n' も '\\n' で行が終わる。
    """
    if path is None or str(path) == "-":
        logger.info("reading from stdin... (press ^D to finish, ^C to abort)")
        buffer = getattr(sys.stdin, "buffer", None)
        if buffer is None:
            # StringIO などバイト層の無いストリームはそのまま使う
            yield "-", sys.stdin
            return
        wrapper = io.TextIOWrapper(buffer, encoding="utf-8", errors="replace", newline="")
        try:
            yield "-", wrapper
        finally:
            # wrapper を閉じると stdin のバッファまで閉じるので、切り離すだけにする
            wrapper.detach()
        return

    p = path.expanduser()
    try:
        f = p.open("r", encoding="utf-8", errors="replace", newline="")
    except OSError as exc:
        raise FileOpenError(p, exc.strerror or str(exc)) from exc

    with f:
        logger.info("reading from %s", p)
        yield str(p), f


# -------------------------
# CLIパース（I/O境界：入力）
# -------------------------


def build_parser(prog: str = DEFAULT_PROG) -> argparse.ArgumentParser:
    """
    CLI引数の定義だけを持つ parser を作る。

    ファイル名は「0個か1個」だが、2個以上を argparse のエラーではなく
    UsageError として扱いたいので nargs="*" で全部受け取っておく。
    """
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Sum the calibration values (first and last digit of each line).",
        allow_abbrev=False,
    )
    parser.add_argument(
        "filenames",
        nargs="*",
        type=Path,
        metavar="filename",
        help="入力ファイルのパス（省略時はstdin）。 '-' でもstdin扱い。",
    )
    parser.add_argument(
        "--max-sum",
        type=int,
        default=INT_MAX,
        help=f"合計の上限。超えたらオーバーフローとして失敗する（default: {INT_MAX}）",
    )
    parser.add_argument("--json", action="store_true", help="結果をJSON形式で出力する")
    parser.add_argument("--trace", action="store_true", help="1行ごとの calibration value をログに出す")
    parser.add_argument("--verbose", action="store_true", help="処理中の詳細ログを表示する")
    parser.add_argument(
        "--post",
        type=str,
        default="",
        help="結果のJSONをPOSTするURL（指定しない場合はPOSTしない）",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP POSTのタイムアウト秒数（default: 10.0）",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the JSON payload to a file (e.g., result.json).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON config file path (e.g., config.json). CLI args override config.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from a .env file before processing (e.g., .env).",
    )
    return parser


def parse_args(argv: list[str], prog: str = DEFAULT_PROG) -> argparse.Namespace:
    """
    CLI引数を解析して args を返す。

    ファイル名が2つ以上なら UsageError。
    args.path は「未指定(None)」と「指定あり」を区別したいので、ここで1つに畳む。
    """
    args = build_parser(prog).parse_args(argv)
    if len(args.filenames) > 1:
        raise UsageError(len(args.filenames))
    args.path = args.filenames[0] if args.filenames else None
    return args


# -------------------------
# 設定ファイル / env（I/O境界：入力）
# -------------------------


def _coerce(name: str, raw: Any, convert: Any, logger: logging.Logger) -> Any:
    """config/env の値を変換する。変換できない値は warning を出して None（= 無視）。"""
    try:
        if convert is bool and isinstance(raw, str):
            return toolkit.parse_bool(raw)
        return convert(raw)
    except (TypeError, ValueError):
        logger.warning("ignored invalid value for %s: %r", name, raw)
        return None


# 設定キー -> (args の属性名, CLIオプション名, 変換関数)
_SETTINGS: dict[str, tuple[str, str, Any]] = {
    "max_sum": ("max_sum", "--max-sum", int),
    "json": ("json", "--json", bool),
    "trace": ("trace", "--trace", bool),
    "verbose": ("verbose", "--verbose", bool),
    "post": ("post", "--post", str),
    "timeout": ("timeout", "--timeout", float),
    "out": ("out", "--out", Path),
}


def load_config(path: Path, logger: logging.Logger) -> dict[str, Any]:
    """
    JSON設定ファイルを読み込む。

    期待する例：
      {"max_sum": 1000, "json": true}
    入力ファイルは位置引数だけで決める（config に path は書けない）。
    読めない・オブジェクトでない場合はログを出して空の辞書（= 何も上書きしない）。
    """
    try:
        data = json.loads(path.expanduser().read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("config load failed: %s (%s)", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.error("config must be a JSON object: %s", path)
        return {}
    return data


def apply_config(args: argparse.Namespace, cfg: dict[str, Any], provided: set[str], logger: logging.Logger) -> None:
    """
    configの値を args に反映する（CLIで明示された項目は上書きしない）。

    位置引数が無ければ stdin を読む、という約束を崩さないよう path は扱わない。
    """
    for key, (attr, option, convert) in _SETTINGS.items():
        if option in provided or key not in cfg:
            continue
        value = _coerce(key, cfg[key], convert, logger)
        if value is not None:
            setattr(args, attr, value)

    logger.info("config applied (CLI overrides config)")


def apply_env(
    args: argparse.Namespace,
    env_file: dict[str, str],
    provided: set[str],
    logger: logging.Logger,
) -> None:
    """
    envの値を args に反映する（ただしCLI指定が優先）。

    対応する環境変数名：
      TREBUCHET_MAX_SUM, TREBUCHET_JSON, TREBUCHET_TRACE,
      TREBUCHET_VERBOSE, TREBUCHET_POST, TREBUCHET_TIMEOUT, TREBUCHET_OUT
    （TREBUCHET_CONFIG は config より先に必要なので resolve_effective_args で読む）
    入力ファイルを env で決める変数は無い。位置引数が無ければ必ず stdin。
    """
    for key, (attr, option, convert) in _SETTINGS.items():
        if option in provided:
            continue
        name = f"TREBUCHET_{key.upper()}"
        raw = toolkit.get_env(name, env_file)
        if raw is None:
            continue
        value = _coerce(name, raw, convert, logger)
        if value is not None:
            setattr(args, attr, value)

    logger.info("env applied (CLI overrides env)")


# -------------------------
# 実行フロー組み立て（入口を薄くする）
# -------------------------


def resolve_effective_args(argv: list[str], prog: str = DEFAULT_PROG) -> tuple[argparse.Namespace, logging.Logger]:
    """
    CLI > env > config の優先順位で「最終的に使う args」を確定する。

    UsageError はここから外に出る（入力はまだ何も読んでいない）。
    """
    args = parse_args(argv, prog)
    provided = toolkit.parse_provided_options(argv)

    # 暫定 logger（env/config で verbose が変わったら最後に作り直す）
    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose)

    env_file: dict[str, str] = {}
    if args.env_file is not None:
        env_file = toolkit.load_env_file(args.env_file, logger)

    if args.config is None:
        v = toolkit.get_env("TREBUCHET_CONFIG", env_file)
        if v:
            args.config = Path(v)

    if args.config is not None:
        cfg = load_config(args.config, logger)
        apply_config(args, cfg, provided, logger)

    apply_env(args, env_file, provided, logger)

    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose or args.trace)
    return args, logger


def validate_args(args: argparse.Namespace, prog: str = DEFAULT_PROG) -> int:
    """入力検証。失敗したらエラーを出して終了コード2を返す。"""
    if args.max_sum < 0:
        toolkit.report_error(prog, f"--max-sum の値は0以上でなければなりません: {args.max_sum}")
        return 2
    if args.timeout <= 0:
        toolkit.report_error(prog, f"--timeout の値は0より大きい必要があります: {args.timeout}")
        return 2
    return 0


def build_json_payload(path: str, max_sum: int, summary: Summary) -> dict[str, Any]:
    """JSON出力用の辞書を組み立てる（キー名はこのツール固有の出力仕様）。"""
    return {
        "path": path,
        "max_sum": max_sum,
        "sum": summary.total,
        "lines": summary.lines,
        "lines_without_digits": summary.lines_without_digits,
    }


def _default_prog() -> str:
    # argv[0] が無い（空の）こともあるので、そのときは既定名を使う
    if sys.argv and sys.argv[0]:
        return os.path.basename(sys.argv[0])
    return DEFAULT_PROG


def main(argv: list[str] | None = None, prog: str | None = None) -> int:
    """
    実行入口（テストからも呼べる形）。

    流れ：
    - resolve_effective_args（設定解決。UsageError ならここで終了）
    - validate_args（入力検証）
    - open_input + compute_sum（実処理。FileOpenError / IntegerOverflowError は終了コード1）
    - 出力（--out / --post を先に済ませ、成功したら --json か `Sum = N` を stdout へ）
    エラーのときは合計を一切表示しない。
    """
    if argv is None:
        argv = sys.argv[1:]
    if prog is None:
        prog = _default_prog()

    try:
        args, logger = resolve_effective_args(argv, prog)
    except UsageError as exc:
        sys.stderr.write(build_parser(prog).format_usage())
        toolkit.report_error(prog, str(exc))
        return 2

    rc = validate_args(args, prog)
    if rc != 0:
        return rc

    try:
        with open_input(args.path, logger) as (display_path, stream):
            summary = compute_sum(iter_chars(stream), args.max_sum, logger, trace=args.trace)
    except CalibrationError as exc:
        toolkit.report_error(prog, str(exc))
        return 1

    logger.info("read done: lines=%d without_digits=%d", summary.lines, summary.lines_without_digits)

    payload: dict[str, Any] | None = None
    if args.json or args.post or args.out is not None:
        payload = build_json_payload(display_path, args.max_sum, summary)

    # --out / --post が先。どちらかが失敗したら stdout には何も出さない
    if args.out is not None and payload is not None:
        if not toolkit.write_json_file(args.out, payload, logger):
            return 1

    if args.post and payload is not None:
        if not toolkit.post_json(args.post, payload, timeout=args.timeout, logger=logger):
            return 1

    if args.json and payload is not None:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(f"Sum = {summary.total}")
    return 0
