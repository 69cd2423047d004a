#!/usr/bin/env python3
"""Run the scheduler trigger endpoint against a SQLite ledger."""

import argparse
import sys
from pathlib import Path

import uvicorn

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from classmarket.engine import MarketEngine
from classmarket.errors import ConfigurationError
from classmarket.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Serve the classmarket scheduler trigger")
    parser.add_argument("--db", default="ledger.db", help="SQLite ledger path")
    parser.add_argument("--config-dir", default=None, help="Directory holding market.yaml")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true")
    args = parser.parse_args()

    configure_logging(level=args.log_level, format_json=args.json_logs)

    try:
        engine = MarketEngine.from_config(
            Path(args.config_dir) if args.config_dir else None,
            db_path=args.db,
        )
    except ConfigurationError as e:
        print(f"❌ Invalid configuration: {e}")
        sys.exit(1)

    params = engine.config.scheduler
    uvicorn.run(
        engine.endpoint().app(),
        host=params.host,
        port=params.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
