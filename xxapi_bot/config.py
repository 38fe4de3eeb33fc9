import os
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigError


WILDCARD = "*"

_HHMM_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def _load_dotenv(path: Path, *, override: bool = False) -> None:
    """Very small .env loader (KEY=VALUE), no external dependency.

    - Ignores empty lines and lines starting with '#'
    - Does not override existing environment variables unless `override` is set
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("\"'")  # allow quoted values
        if not key:
            continue
        if override:
            os.environ[key] = value
        else:
            os.environ.setdefault(key, value)


def _get_env_str(key: str, *, default: str | None = None) -> str:
    value = os.getenv(key)
    if value is None:
        if default is None:
            raise ConfigError(f"Missing required env var: {key}")
        return default
    value = value.strip()
    if not value:
        if default is not None:
            return default
        raise ConfigError(f"Empty required env var: {key}")
    return value


def _get_env_int(key: str, *, default: int | None = None) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        if default is None:
            raise ConfigError(f"Missing required env var: {key}")
        return default
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ConfigError(f"Invalid int env var {key}={value!r}") from exc


def _get_env_bool(key: str, *, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    raise ConfigError(f"Invalid bool env var {key}={value!r} (use 1/0)")


def _get_env_list(key: str) -> tuple[str, ...]:
    raw = os.getenv(key, "")
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def parse_hhmm(raw: str | None) -> tuple[int, int]:
    if raw is None:
        raise ConfigError("missing HH:MM")
    match = _HHMM_RE.match(raw)
    if not match:
        raise ConfigError(f"invalid HH:MM: {raw!r}")
    hour = int(match.group(1))
    minute = int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigError(f"invalid HH:MM: {raw!r}")
    return hour, minute


@dataclass(frozen=True)
class PushConfig:
    enabled: bool = False
    time_of_day: tuple[int, int] = (8, 0)
    destinations: tuple[str, ...] = ()

    @property
    def send_time(self) -> str:
        return f"{self.time_of_day[0]:02d}:{self.time_of_day[1]:02d}"

    @property
    def broadcast(self) -> bool:
        return WILDCARD in self.destinations


@dataclass(frozen=True)
class Config:
    # Telegram / Telethon
    tg_api_id: int
    tg_api_hash: str
    tg_bot_tokens: tuple[str, ...]
    tg_session_prefix: str

    # Safety / ops
    dry_run: bool
    log_level: str
    enable_log: bool
    http_timeout_seconds: int

    # 今日新闻
    cache_dir: str
    news_api: str
    news_push: PushConfig

    # 今日金价 / 微博热搜
    gold_api: str
    gold_bank_keyword: str
    weibo_api: str

    # 手办化
    figurine_api: str
    figurine_api_key: str
    figurine_cooldown_seconds: int
    figurine_wait_seconds: int

    @staticmethod
    def load(*, reload: bool = False) -> "Config":
        _load_dotenv(Path(".env"), override=reload)

        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

        tokens = _get_env_list("TG_BOT_TOKENS")
        if not tokens:
            raise ConfigError("TG_BOT_TOKENS requires at least one bot token (comma-separated)")

        cooldown = _get_env_int("FIGURINE_COOLDOWN_SECONDS", default=5)
        if not (1 <= cooldown <= 60):
            raise ConfigError(f"FIGURINE_COOLDOWN_SECONDS must be within 1..60, got: {cooldown}")

        return Config(
            tg_api_id=_get_env_int("TG_API_ID"),
            tg_api_hash=_get_env_str("TG_API_HASH"),
            tg_bot_tokens=tokens,
            tg_session_prefix=_get_env_str("TG_SESSION_PREFIX", default="xxapi_bot"),
            dry_run=_get_env_bool("DRY_RUN", default=False),
            log_level=log_level,
            enable_log=_get_env_bool("ENABLE_LOG", default=True),
            http_timeout_seconds=_get_env_int("HTTP_TIMEOUT_SECONDS", default=10),
            cache_dir=_get_env_str("CACHE_DIR", default=os.path.join("cache", "xxapi", "news")),
            news_api=_get_env_str("NEWS_API", default="https://60s.viki.moe/v2/60s"),
            news_push=PushConfig(
                enabled=_get_env_bool("NEWS_AUTO_SEND", default=False),
                time_of_day=parse_hhmm(_get_env_str("NEWS_SEND_TIME", default="08:00")),
                destinations=_get_env_list("NEWS_TARGET_GROUPS"),
            ),
            gold_api=_get_env_str("GOLD_API", default="https://v2.xxapi.cn/api/goldprice"),
            gold_bank_keyword=_get_env_str("GOLD_BANK_KEYWORD", default="中国银行"),
            weibo_api=_get_env_str("WEIBO_API", default="https://v2.xxapi.cn/api/weibohot"),
            figurine_api=_get_env_str(
                "FIGURINE_API", default="https://v2.xxapi.cn/api/generateFigurineImage"
            ),
            figurine_api_key=os.getenv("FIGURINE_API_KEY", "").strip(),
            figurine_cooldown_seconds=cooldown,
            figurine_wait_seconds=_get_env_int("FIGURINE_WAIT_SECONDS", default=10),
        )
