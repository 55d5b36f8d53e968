# scripts/process_webhooks.py

import os
import sys
import argparse
import logging
from typing import Tuple

from dotenv import load_dotenv
from sqlmodel import Session

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ✅ Load environment variables before settings are read
load_dotenv()

from core.clock import Clock, system_clock
from core.database import engine
from repositories.webhook_repository import list_unprocessed_events
from services.webhook_processor_service import WebhookProcessorService

logger = logging.getLogger(__name__)


def drain_queue(session: Session, limit: int = 100, clock: Clock = system_clock) -> Tuple[int, int]:
    """
    Process unprocessed queue entries, oldest first. A failing event is
    reported and left for the next run. Returns (processed, failed).
    """
    processor = WebhookProcessorService(session, clock)
    event_ids = [event.stripe_event_id for event in list_unprocessed_events(session, limit)]
    print(f"⚙️ {len(event_ids)} queued webhook event(s) to process")

    processed = failed = 0
    for event_id in event_ids:
        try:
            processor.process(event_id)
            processed += 1
        except Exception as e:
            failed += 1
            print(f"❌ {event_id}: {e}")
    print(f"✅ Processed {processed}, ❌ failed {failed}")
    return processed, failed


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Drain the Stripe webhook queue.")
    parser.add_argument("--limit", type=int, default=100, help="Maximum number of events to process")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    with Session(engine) as session:
        _, failures = drain_queue(session, args.limit)
    sys.exit(1 if failures else 0)
