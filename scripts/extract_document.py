#!/usr/bin/env python3
"""Canon extraction CLI script.

Runs the extraction pipeline over a single text file and prints the merged result
(entities, facts and relationships with document-absolute evidence positions) as JSON.
With the JSON cache backend, chunks finished before a failure are reused on re-run.

Usage:
    python scripts/extract_document.py chapter1.md
    python scripts/extract_document.py --chunks-only chapter1.md
    python scripts/extract_document.py --max-chars 6000 --overlap-chars 400 chapter1.md
    python scripts/extract_document.py --config config/custom.yaml -o out.json chapter1.md

Options:
    --config, -c: Path to config file (default: config/config.yaml)
    --chunks-only: Print the chunk layout without calling the LLM
    --max-chars / --overlap-chars: Per-run chunk size overrides
    --output, -o: Write JSON to a file instead of stdout
    --verbose, -v: Enable verbose logging
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger

from realmsync.errors import RealmSyncError
from realmsync.extraction.llm_extractor import LLMExtractor
from realmsync.pipeline.extraction_pipeline import ExtractionPipeline
from realmsync.storage.canon_store import InMemoryCanonStore
from realmsync.storage.documents import Document, InMemoryDocumentStore
from realmsync.storage.extraction_cache import (
    ExtractionCache,
    InMemoryExtractionCache,
    JsonFileExtractionCache,
)
from realmsync.utils.config import Config, load_config
from realmsync.utils.logging import setup_logging


def build_cache(config: Config) -> ExtractionCache:
    """Create the cache backend named in the configuration."""
    if config.cache.backend == "json":
        return JsonFileExtractionCache(config.cache.path, ttl_days=config.cache.ttl_days)
    return InMemoryExtractionCache(ttl_days=config.cache.ttl_days)


def describe_chunks(pipeline: ExtractionPipeline, content: str, args: argparse.Namespace) -> dict:
    chunks = pipeline.chunker.chunk(
        content, max_chars=args.max_chars, overlap_chars=args.overlap_chars
    )
    return {
        "chunks": [
            {
                "index": chunk.index,
                "startOffset": chunk.start_offset,
                "endOffset": chunk.end_offset,
                "chars": len(chunk.text),
            }
            for chunk in chunks
        ],
        "statistics": pipeline.chunker.get_chunk_statistics(chunks),
    }


async def run(args: argparse.Namespace, config: Config) -> dict:
    content = args.path.read_text(encoding="utf-8")

    documents = InMemoryDocumentStore()
    document = documents.add(Document(project_id="cli", title=args.path.stem, content=content))

    pipeline = ExtractionPipeline(
        documents,
        build_cache(config),
        LLMExtractor(config.llm, prompts_path=config.extraction.prompt_template),
        config=config,
        sink=InMemoryCanonStore(documents),
    )

    if args.chunks_only:
        return describe_chunks(pipeline, content, args)

    result = await pipeline.extract_from_document(
        document.id, max_chars=args.max_chars, overlap_chars=args.overlap_chars
    )
    return result.to_wire()


def main():
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Extract canon (entities, facts, relationships) from a document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("path", type=Path, help="Text or markdown file to process")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--chunks-only",
        action="store_true",
        help="Print the chunk layout without calling the LLM",
    )
    parser.add_argument("--max-chars", type=int, help="Override the maximum chunk size")
    parser.add_argument("--overlap-chars", type=int, help="Override the chunk overlap")
    parser.add_argument("--output", "-o", type=Path, help="Write JSON here instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if not args.path.is_file():
        parser.error(f"File not found: {args.path}")

    try:
        logger.info(f"Loading configuration from {args.config}")
        config = load_config(args.config)
        setup_logging(config.logging, verbose=args.verbose)

        payload = asyncio.run(run(args, config))
    except RealmSyncError as e:
        logger.error(f"Extraction failed [{e.code}]: {e}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Extraction failed: {e}")
        return 1

    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text + "\n", encoding="utf-8")
        logger.success(f"Wrote {args.output}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
