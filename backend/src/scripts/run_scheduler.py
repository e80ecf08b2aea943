#!/usr/bin/env python3
"""
Theme Park Crowd Tracker - Ingestion Scheduler Process
Runs the catalog sync and the queue sampler on their schedules in one
long-lived process (alternative to separate cron entries).

Usage:
    python -m scripts.run_scheduler
"""

import signal
import sys
from pathlib import Path

# Add src to path
backend_src = Path(__file__).parent.parent
sys.path.insert(0, str(backend_src.absolute()))

from utils.logger import logger
from collector.scheduler import IngestionScheduler


def main():
    """Main entry point."""
    scheduler = IngestionScheduler()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping scheduler")
        scheduler.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.run_forever()


if __name__ == '__main__':
    main()
