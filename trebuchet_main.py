"""
trebuchet のエントリーポイント（薄いラッパー）

狙い：
- import される「実装本体」（trebuchet.py）と、CLI実行の「入口」を分離する
- テストは `trebuchet.py` を直接 import して行う

  cat input.txt | python trebuchet_main.py
  python trebuchet_main.py input.txt
"""

from __future__ import annotations

import sys

if __name__ == "__main__":
    from trebuchet import main

    raise SystemExit(main(sys.argv[1:]))
