#!/usr/bin/env python3
"""Extraction cache maintenance.

Deletes expired entries from the JSON file cache (the periodic sweep), or drops every
entry of a prompt version after the prompt changed.

Usage:
    python scripts/purge_cache.py
    python scripts/purge_cache.py --prompt-version v1
"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from realmsync.storage.extraction_cache import JsonFileExtractionCache
from realmsync.utils.config import load_config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Purge expired (or prompt-version) entries from the extraction cache.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c", type=Path, default=Path("config/config.yaml"), help="Config file"
    )
    parser.add_argument(
        "--prompt-version",
        help="Invalidate all entries of this prompt version instead of purging expired ones",
    )
    return parser.parse_args()


async def purge(cache: JsonFileExtractionCache, prompt_version: str | None) -> int:
    if prompt_version:
        return await cache.invalidate_cache(prompt_version)
    return await cache.purge_expired()


def main():
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="INFO",
    )

    args = parse_args()

    try:
        config = load_config(args.config)
        if config.cache.backend != "json":
            logger.info("In-memory cache backend configured; nothing to purge")
            return 0

        cache = JsonFileExtractionCache(config.cache.path, ttl_days=config.cache.ttl_days)
        removed = asyncio.run(purge(cache, args.prompt_version))
        logger.success(f"Removed {removed} cache entries from {config.cache.path}")
        return 0
    except (OSError, ValueError) as e:
        logger.error(f"Cache purge failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
