from __future__ import annotations

from pathlib import Path

from loguru import logger

from realmsync.utils.config import LoggingConfig
from realmsync.utils.logging import setup_logging


def test_setup_logging_writes_to_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "realmsync.log"

    setup_logging(LoggingConfig(level="INFO", file=str(log_file)))
    logger.debug("hidden detail")
    logger.info("chunk 1/3 extracted")
    logger.remove()

    text = log_file.read_text(encoding="utf-8")
    assert "chunk 1/3 extracted" in text
    assert "hidden detail" not in text


def test_verbose_enables_debug_without_file(tmp_path: Path) -> None:
    log_file = tmp_path / "debug.log"

    setup_logging(LoggingConfig(file=None), verbose=True)
    logger.add(str(log_file), level="DEBUG")
    logger.debug("cache hit")
    logger.remove()

    assert "cache hit" in log_file.read_text(encoding="utf-8")
