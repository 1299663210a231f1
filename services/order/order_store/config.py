"""
Order Service: 設定

起動時に環境変数を一度だけ読み込み、不変の Settings にまとめる。
不正な値 (数値でないポート番号など) は無視してデフォルト値を使う。
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_REDIS_URL = "redis://localhost:6379"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@dataclass(frozen=True)
class Settings:
    redis_url: str = DEFAULT_REDIS_URL
    redis_timeout: float = 5.0
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        環境変数から設定を組み立てる。

        REDIS_URL が優先。未設定なら REDIS_ADDR (host:port) から URL を作る。
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        redis_url = env.get("REDIS_URL")
        if not redis_url and env.get("REDIS_ADDR"):
            redis_url = f"redis://{env['REDIS_ADDR']}"

        return cls(
            redis_url=redis_url or defaults.redis_url,
            redis_timeout=_parse_timeout(env.get("REDIS_TIMEOUT"), defaults.redis_timeout),
            server_host=env.get("SERVER_HOST", defaults.server_host),
            server_port=_parse_port(env.get("SERVER_PORT"), defaults.server_port),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
        )


def _parse_port(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        port = int(value)
    except ValueError:
        return default
    return port if 0 < port <= 65535 else default


def _parse_timeout(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        timeout = float(value)
    except ValueError:
        return default
    return timeout if timeout > 0 else default


def configure_logging(level: str = "INFO") -> None:
    """ルートロガーにハンドラを1つだけ取り付ける (二重登録しない)。"""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
