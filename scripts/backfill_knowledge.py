#!/usr/bin/env python3
"""
Knowledge backfill script.

Runs the ingestion pipeline inline for assistant messages that never got a
knowledge card (e.g. the process stopped before the detached run finished),
and optionally runs a search afterwards to check the result.

Usage:
    python scripts/backfill_knowledge.py MESSAGE_ID [MESSAGE_ID ...] [--search QUERY]

Examples:
    # Ingest two answers (answers that already have a card are skipped)
    python scripts/backfill_knowledge.py 6f1c... 9a2e...

    # Ingest and check that the card is findable
    python scripts/backfill_knowledge.py 6f1c... --search "deploy vercel"
"""

import argparse
import asyncio
import logging
import sys

from app.core.config import settings
from app.core.database import create_supabase_client
from app.features.knowledge import KnowledgeService
from app.services.database import KnowledgeDatabase
from app.services.openai_client import create_openai_client
from app.shared.correlation import CorrelationContext
from app.shared.logging_config import setup_logging

logger = logging.getLogger("TeamMemory.Backfill")


async def run_backfill(message_ids: list[str], search_query: str | None = None) -> bool:
    openai_client = create_openai_client()
    try:
        db = KnowledgeDatabase(await create_supabase_client())
        knowledge = KnowledgeService.from_clients(openai_client, db)

        if not await db.health_check():
            logger.error("Cannot reach Supabase")
            return False

        failures = 0
        for message_id in message_ids:
            with CorrelationContext():
                message = await db.get_message(message_id)
                if message is None:
                    logger.error(f"Message not found: {message_id}")
                    failures += 1
                    continue

                result = await knowledge.ingest(message_id, message["user_id"])
                if result.success:
                    logger.info(
                        f"{message_id}: card={result.knowledge_card_id} "
                        f"embedding={result.embedding_id or 'missing'}"
                    )
                elif result.knowledge_card_id:
                    logger.info(f"{message_id}: already has card {result.knowledge_card_id}, skipped")
                else:
                    logger.error(f"{message_id}: {result.error}")
                    failures += 1

        logger.info(f"Backfill done: {len(message_ids) - failures} ok, {failures} failed")

        if search_query:
            results = await knowledge.search(search_query, mode="hybrid")
            logger.info(f"Search '{search_query}': {len(results)} results")
            for i, r in enumerate(results, 1):
                logger.info(f"{i}. score={r.score:.3f} {r.title}")

        return failures == 0
    finally:
        await openai_client.close()


def main():
    parser = argparse.ArgumentParser(
        description="Run knowledge ingestion inline for assistant messages"
    )
    parser.add_argument("message_ids", nargs="+", help="Assistant message UUIDs")
    parser.add_argument(
        "--search",
        type=str,
        default=None,
        help="Run a hybrid search afterwards with this query",
    )
    args = parser.parse_args()

    setup_logging(service_name=settings.SERVICE_NAME, json_output=False)
    success = asyncio.run(run_backfill(args.message_ids, args.search))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
