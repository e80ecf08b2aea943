#!/usr/bin/env python3
"""
Theme Park Crowd Tracker - Queue Sample Collection Script
Polls every park in the catalog once and stores new wait-time samples.

Run every 5 minutes via cron. Parks that fail are logged and counted; the
run still succeeds as long as the park list itself could be read.

Usage:
    python -m scripts.collect_samples [--batch-size N] [--batch-delay SECONDS]
"""

import sys
import argparse
from pathlib import Path

# Add src to path
backend_src = Path(__file__).parent.parent
sys.path.insert(0, str(backend_src.absolute()))

from utils.config import SAMPLER_BATCH_SIZE, SAMPLER_BATCH_DELAY_SECONDS
from utils.logger import logger
from collector.queue_time_sampler import QueueTimeSampler


class SampleCollector:
    """
    Runs one sampling pass and prints a summary.
    """

    def __init__(self, batch_size: int = SAMPLER_BATCH_SIZE,
                 batch_delay_seconds: float = SAMPLER_BATCH_DELAY_SECONDS,
                 sampler: QueueTimeSampler = None):
        self.sampler = sampler or QueueTimeSampler(
            batch_size=batch_size,
            batch_delay_seconds=batch_delay_seconds
        )

    def run(self) -> int:
        """
        Main execution method.

        Returns:
            Process exit code
        """
        logger.info("=" * 60)
        logger.info("QUEUE SAMPLE COLLECTION - Starting")
        logger.info("=" * 60)

        try:
            result = self.sampler.sample_all()
        except Exception as e:
            logger.error(f"Fatal error during sample collection: {e}", exc_info=True)
            return 1

        logger.info("=" * 60)
        logger.info("COLLECTION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Parks processed:     {result.parks_processed}")
        logger.info(f"Parks failed:        {result.parks_failed}")
        logger.info(f"New samples:         {result.new_samples}")
        logger.info(f"Skipped duplicates:  {result.skipped_duplicates}")
        for error in result.errors[:20]:
            logger.warning(f"  {error}")
        logger.info("=" * 60)
        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Collect current queue times for all parks')
    parser.add_argument('--batch-size', type=int, default=SAMPLER_BATCH_SIZE,
                        help='Parks fetched concurrently per batch (3-20)')
    parser.add_argument('--batch-delay', type=float, default=SAMPLER_BATCH_DELAY_SECONDS,
                        help='Seconds to pause between batches')
    args = parser.parse_args()

    collector = SampleCollector(batch_size=args.batch_size, batch_delay_seconds=args.batch_delay)
    sys.exit(collector.run())


if __name__ == '__main__':
    main()
