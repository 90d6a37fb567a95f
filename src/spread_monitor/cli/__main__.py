from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List

from dotenv import load_dotenv

from ..config import ConfigError, MonitorSettings, load_config, require_telegram_credentials
from ..logging_setup import setup_logging
from ..engine import MonitorEngine

log = logging.getLogger("cli")


def build_settings(cfg_path: str) -> MonitorSettings:
    cfg = load_config(cfg_path)
    setup_logging((cfg.get("logging", {}) or {}).get("level", "INFO"))
    settings = MonitorSettings.from_dict(cfg)
    require_telegram_credentials(settings)
    return settings


async def main_async(settings: MonitorSettings) -> None:
    engine = MonitorEngine(settings)
    stop_event = asyncio.Event()
    received: List[str] = []

    def _on_signal(name: str) -> None:
        received.append(name)
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except NotImplementedError:
            # Windows event loops: Ctrl+C still surfaces as KeyboardInterrupt
            pass

    await engine.start()
    try:
        await stop_event.wait()
        log.info("[SHUTDOWN] %s received", received[0] if received else "stop")
    finally:
        await engine.stop(reason=received[0] if received else "")


def main() -> None:
    ap = argparse.ArgumentParser(description="Mark-price spread monitor")
    ap.add_argument("--config", default="configs/default.yaml", help="Path to YAML config (default: configs/default.yaml)")
    args = ap.parse_args()

    load_dotenv()
    try:
        settings = build_settings(args.config)
    except ConfigError as e:
        setup_logging()
        log.error("[CONFIG] %s", e)
        sys.exit(1)

    try:
        asyncio.run(main_async(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
