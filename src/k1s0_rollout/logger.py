"""structlog ベースのロガー設定"""

from __future__ import annotations

import logging
import sys

import structlog

from .settings import LogSection


def new_logger(level: str = "INFO", format: str = "json") -> structlog.stdlib.BoundLogger:
    """rollout のイベント（bias_fallback, configuration_updated など）を出力する
    structlog ロガーを設定して返す。

    Args:
        level: ログレベル ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        format: 出力形式 ("json" or "text")
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer: structlog.types.Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger("k1s0_rollout")


def configure_logging(section: LogSection) -> structlog.stdlib.BoundLogger:
    """LogSection からロガーを設定する。"""
    return new_logger(level=section.level, format=section.format)
