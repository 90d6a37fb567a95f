from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import math
import os
import yaml
import re

from .exchange.endpoints import EXCHANGES

_ENV_PATTERN = re.compile(r"\$\{([^:}]+)(?::([^}]*))?\}")

POLICIES = ("bid_ask", "index")
DIRECTIONS = ("both", "long_only", "short_only")


class ConfigError(ValueError):
    """Raised for configuration that must stop the process before any connection is made."""


def _expand_env(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    if isinstance(value, str):
        def repl(m):
            key = m.group(1)
            default = m.group(2) if m.group(2) is not None else ""
            return os.getenv(key, default)
        return _ENV_PATTERN.sub(repl, value)
    return value

def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out

def load_yaml(path: Path) -> Dict[str, Any]:
    d = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return _expand_env(d)

def load_config(config_path: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    base_path = Path(config_path)
    if not base_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    cfg = load_yaml(base_path)
    if overrides:
        cfg = deep_merge(cfg, overrides)
    return cfg


def _num(section: Dict[str, Any], key: str, default: float) -> float:
    raw = section.get(key, default)
    if raw is None or raw == "":
        return float(default)
    try:
        val = float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be numeric, got {raw!r}") from e
    if not math.isfinite(val):
        raise ConfigError(f"{key} must be finite, got {raw!r}")
    return val


def _flag(section: Dict[str, Any], key: str, default: bool) -> bool:
    raw = section.get(key, default)
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return bool(raw)


def _symbols(raw: Any) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    return [str(s).strip().upper() for s in raw if str(s).strip()]


@dataclass
class SignalParams:
    policy: str = "bid_ask"
    entry_threshold_pct: float = 0.5
    exit_threshold_pct: float = 0.2
    cooldown_sec: float = 60.0
    direction: str = "both"

    def validate(self) -> None:
        if self.policy not in POLICIES:
            raise ConfigError(f"signal.policy must be one of {POLICIES}, got {self.policy!r}")
        if self.direction not in DIRECTIONS:
            raise ConfigError(f"signal.direction must be one of {DIRECTIONS}, got {self.direction!r}")
        if self.exit_threshold_pct < 0:
            raise ConfigError("signal.exit_threshold_pct must be >= 0")
        if self.entry_threshold_pct <= self.exit_threshold_pct:
            raise ConfigError(
                f"signal.entry_threshold_pct ({self.entry_threshold_pct}) must be greater than "
                f"signal.exit_threshold_pct ({self.exit_threshold_pct})"
            )
        if self.cooldown_sec < 0:
            raise ConfigError("signal.cooldown_sec must be >= 0")


@dataclass
class StreamParams:
    forced_reconnect_sec: float = 23 * 60 * 60
    retry_delay_sec: float = 5.0
    watchdog_silence_sec: float = 30.0
    watchdog_interval_sec: float = 10.0
    ping_interval_sec: Optional[float] = 20.0
    ping_timeout_sec: Optional[float] = 20.0
    close_timeout_sec: float = 10.0

    def validate(self) -> None:
        if self.forced_reconnect_sec <= 0:
            raise ConfigError("streams.forced_reconnect_sec must be > 0")
        if self.retry_delay_sec < 0:
            raise ConfigError("streams.retry_delay_sec must be >= 0")
        if self.watchdog_silence_sec <= 0:
            raise ConfigError("streams.watchdog_silence_sec must be > 0")
        if not 0 < self.watchdog_interval_sec < self.forced_reconnect_sec:
            raise ConfigError("streams.watchdog_interval_sec must be > 0 and shorter than forced_reconnect_sec")


@dataclass
class StatsParams:
    interval_sec: float = 120.0
    notify: bool = False


@dataclass
class TelegramParams:
    enabled: bool = True
    parse_mode: str = "HTML"
    branding: str = "Spread Monitor"
    queue_size: int = 1000
    shutdown_timeout_sec: float = 5.0


@dataclass
class ExchangeParams:
    name: str = "asterdex"
    quote_asset: str = "USDT"
    rest_timeout_sec: float = 10.0


@dataclass
class UniverseParams:
    symbols: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)


@dataclass
class MonitorSettings:
    signal: SignalParams = field(default_factory=SignalParams)
    streams: StreamParams = field(default_factory=StreamParams)
    stats: StatsParams = field(default_factory=StatsParams)
    telegram: TelegramParams = field(default_factory=TelegramParams)
    exchange: ExchangeParams = field(default_factory=ExchangeParams)
    universe: UniverseParams = field(default_factory=UniverseParams)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "MonitorSettings":
        s_cfg = cfg.get("signal", {}) or {}
        st_cfg = cfg.get("streams", {}) or {}
        stats_cfg = cfg.get("stats", {}) or {}
        tg_cfg = cfg.get("telegram", {}) or {}
        ex_cfg = cfg.get("exchange", {}) or {}
        u_cfg = cfg.get("universe", {}) or {}

        def _opt(key: str, default: float) -> Optional[float]:
            # 0 or null disables library-level keepalive pings
            if key in st_cfg and st_cfg[key] is None:
                return None
            val = _num(st_cfg, key, default)
            return val if val > 0 else None

        settings = cls(
            signal=SignalParams(
                policy=str(s_cfg.get("policy", "bid_ask")).lower(),
                entry_threshold_pct=_num(s_cfg, "entry_threshold_pct", 0.5),
                exit_threshold_pct=_num(s_cfg, "exit_threshold_pct", 0.2),
                cooldown_sec=_num(s_cfg, "cooldown_sec", 60.0),
                direction=str(s_cfg.get("direction", "both")).lower(),
            ),
            streams=StreamParams(
                forced_reconnect_sec=_num(st_cfg, "forced_reconnect_sec", 23 * 60 * 60),
                retry_delay_sec=_num(st_cfg, "retry_delay_sec", 5.0),
                watchdog_silence_sec=_num(st_cfg, "watchdog_silence_sec", 30.0),
                watchdog_interval_sec=_num(st_cfg, "watchdog_interval_sec", 10.0),
                ping_interval_sec=_opt("ping_interval_sec", 20.0),
                ping_timeout_sec=_opt("ping_timeout_sec", 20.0),
                close_timeout_sec=_num(st_cfg, "close_timeout_sec", 10.0),
            ),
            stats=StatsParams(
                interval_sec=_num(stats_cfg, "interval_sec", 120.0),
                notify=_flag(stats_cfg, "notify", False),
            ),
            telegram=TelegramParams(
                enabled=_flag(tg_cfg, "enabled", True),
                parse_mode=str(tg_cfg.get("parse_mode", "HTML")),
                branding=str(tg_cfg.get("branding", "Spread Monitor")),
                queue_size=int(_num(tg_cfg, "queue_size", 1000)),
                shutdown_timeout_sec=_num(tg_cfg, "shutdown_timeout_sec", 5.0),
            ),
            exchange=ExchangeParams(
                name=str(ex_cfg.get("name", "asterdex")).lower(),
                quote_asset=str(ex_cfg.get("quote_asset", "USDT") or "USDT").upper(),
                rest_timeout_sec=_num(ex_cfg, "rest_timeout_sec", 10.0),
            ),
            universe=UniverseParams(
                symbols=_symbols(u_cfg.get("symbols")),
                exclude=_symbols(u_cfg.get("exclude")),
            ),
            log_level=str((cfg.get("logging", {}) or {}).get("level", "INFO")),
        )
        settings.signal.validate()
        settings.streams.validate()
        if settings.exchange.name not in EXCHANGES:
            raise ConfigError(f"exchange.name must be one of {EXCHANGES}, got {settings.exchange.name!r}")
        if settings.stats.interval_sec <= 0:
            raise ConfigError("stats.interval_sec must be > 0")
        if settings.telegram.queue_size <= 0:
            raise ConfigError("telegram.queue_size must be > 0")
        return settings


def require_telegram_credentials(settings: MonitorSettings) -> None:
    """Fail fast when alerts are enabled but cannot be delivered anywhere."""
    if not settings.telegram.enabled:
        return
    missing = [k for k in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID") if not os.getenv(k)]
    if missing:
        raise ConfigError(f"Missing {' or '.join(missing)} (set .env or disable telegram.enabled)")
