#!/usr/bin/env python
"""Generate cached embeddings for every person, or for a single person.

Usage:
    python scripts/generate_embeddings.py
    python scripts/generate_embeddings.py --person-id <uuid> --type skills --refresh
    python scripts/generate_embeddings.py --stats
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from uuid import UUID

from app.core.errors import RAGError
from app.main import configure_logging, rag_lifespan
from app.schemas import EmbeddingType

_LOGGER = logging.getLogger("generate_embeddings")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--person-id", type=UUID, help="Only process this person")
    parser.add_argument(
        "--type",
        dest="embedding_type",
        choices=[item.value for item in EmbeddingType],
        default=EmbeddingType.PROFILE.value,
    )
    parser.add_argument("--refresh", action="store_true", help="Regenerate even when a cached embedding exists")
    parser.add_argument("--stats", action="store_true", help="Print embedding and search statistics and exit")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    async with rag_lifespan() as service:
        if args.stats:
            stats = await service.get_stats()
            print(json.dumps(stats.model_dump(mode="json"), indent=2))
            return 0

        if args.person_id is not None:
            if args.refresh:
                record = await service.refresh_embedding(args.person_id, args.embedding_type)
                print(f"Regenerated {record.embedding_type} embedding for {record.person_id} (dim={record.dimension})")
            else:
                vector = await service.generate_person_embedding(args.person_id, args.embedding_type)
                print(f"Embedding ready for {args.person_id} (dim={vector.size})")
            return 0

        summary = await service.generate_all_embeddings(args.embedding_type)
        print(json.dumps(summary.model_dump(mode="json"), indent=2))
        return 1 if summary.failed else 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(_run(args))
    except RAGError as exc:
        _LOGGER.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
