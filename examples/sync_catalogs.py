"""Example: mirror operator catalogs into a local working directory.

Usage:
    python examples/sync_catalogs.py [imageset-config.yaml] [working-dir]
"""

import asyncio
import logging
import sys

from operator_catalog_mirror import (
    MirrorError,
    Operator,
    load_mirror_config,
    sync_operator_catalogs,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_CATALOGS = [
    Operator(catalog="registry.redhat.io/redhat/redhat-operator-index:v4.15"),
]


async def progress(completed: int, total: int, message: str) -> None:
    logger.info(f"  blobs {completed}/{total}: {message}")


async def main(argv: list[str]) -> int:
    """Synchronize the configured catalogs and report the outcome."""
    operators = load_mirror_config(argv[1]) if len(argv) > 1 else DEFAULT_CATALOGS
    working_dir = argv[2] if len(argv) > 2 else "working-dir"

    try:
        report = await sync_operator_catalogs(
            operators,
            working_dir,
            progress_callback=progress,
            concurrency=8,
        )
    except MirrorError as e:
        logger.error(f"Synchronization aborted: {e}")
        return 1

    for result in report.results:
        if result.error:
            logger.error(f"✗ {result.catalog}: {result.error}")
        else:
            state = "updated" if result.changed else "unchanged"
            logger.info(f"✓ {result.catalog} ({state}) -> {result.configs_dir}")

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv)))
