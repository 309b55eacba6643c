"""
Shared — ログ設定

各モジュールは logging.getLogger(__name__) を使い、
プロセス起動時 (lifespan) に一度だけ setup_logging() を呼ぶ。
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger().setLevel(level.upper())
