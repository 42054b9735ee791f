"""Run a price sweep from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os

from dotenv import load_dotenv

from priceadjuster.jobs.sweep import run_sweep


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--collection", help="collection id to reprice (defaults to SALE_COLLECTION_ID)")
    parser.add_argument("--full", action="store_true", help="reconcile the whole catalog instead of one collection")
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    summary = asyncio.run(run_sweep(args.collection, full=args.full))
    print(json.dumps(summary.as_dict(), indent=2))


if __name__ == "__main__":
    main()
