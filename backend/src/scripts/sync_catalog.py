#!/usr/bin/env python3
"""
Theme Park Crowd Tracker - Catalog Sync Script
Fetches all park groups and parks from Queue-Times.com and upserts them.

Run daily (the sampler only polls parks that are in the catalog).

Usage:
    python -m scripts.sync_catalog

Exit codes:
    0   Catalog synced (including "nothing changed")
    1   Upstream catalog unavailable or database failure
"""

import sys
from pathlib import Path

# Add src to path
backend_src = Path(__file__).parent.parent
sys.path.insert(0, str(backend_src.absolute()))

from utils.cache import ResultCache, get_result_cache
from utils.logger import logger
from collector.catalog_synchronizer import CatalogSynchronizer, CatalogSyncError


class CatalogSyncRunner:
    """
    Runs one catalog sync and reports what changed.
    """

    def __init__(self, synchronizer: CatalogSynchronizer = None, cache: ResultCache = None):
        self.synchronizer = synchronizer or CatalogSynchronizer()
        self.cache = cache if cache is not None else get_result_cache()

    def run(self) -> int:
        """
        Main execution method.

        Returns:
            Process exit code
        """
        logger.info("=" * 60)
        logger.info("CATALOG SYNC - Starting")
        logger.info("=" * 60)

        try:
            result = self.synchronizer.sync()
        except CatalogSyncError as e:
            logger.error(f"Catalog sync aborted: {e}")
            return 1
        except Exception as e:
            logger.error(f"Fatal error during catalog sync: {e}", exc_info=True)
            return 1

        logger.info("=" * 60)
        logger.info("CATALOG SYNC SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Groups seen:     {result.groups_seen}")
        logger.info(f"Groups written:  {result.groups_written}")
        logger.info(f"Parks seen:      {result.parks_seen}")
        logger.info(f"Parks written:   {result.parks_written}")
        logger.info("=" * 60)
        self.purge_cache()
        return 0

    def purge_cache(self) -> None:
        """Drop expired result-cache entries."""
        try:
            removed = self.cache.purge_expired()
        except Exception as e:
            logger.warning(f"Result cache purge failed: {e}")
            return
        logger.info(f"Expired cache entries removed: {removed}")


def main():
    """Main entry point."""
    sys.exit(CatalogSyncRunner().run())


if __name__ == '__main__':
    main()
