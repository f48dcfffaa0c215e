"""
Control Plane Service Launcher

Starts the GhostLayer control-plane service from the control/ package.

This service provides:
- User, server node and join-request administration
- Support messaging and broadcasts
- Periodic synchronization (daily settlement + usage accrual)
- Drafting helpers backed by the optional enrichment service

Usage:
    python scripts/run_control_service.py --host 0.0.0.0 --port 8010

Environment Variables:
    GHOSTLAYER_API_PORT: API port (default: 8010)
    GHOSTLAYER_BIND_HOST: Bind address (default: 0.0.0.0)
    GHOSTLAYER_DB_URL: State database URL (default: sqlite under control/data/)
    GHOSTLAYER_SYNC_INTERVAL_SECONDS: Seconds between sync ticks (default: 600)
    GHOSTLAYER_ACCRUAL_MODE: random | upstream (default: random)
    GHOSTLAYER_LOG_LEVEL / GHOSTLAYER_LOG_FILE: Logging setup
    GEMINI_API_KEY: Enables AI drafting (fallback text otherwise)
"""
import argparse
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn

from control import config
from control.startup_profile import StartupProfile, validate_control_profile
from shared.logging_config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run GhostLayer control-plane service")
    parser.add_argument("--host", default=config.BIND_HOST)
    parser.add_argument("--port", type=int, default=config.API_PORT)
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    parser.add_argument("--log-file", default=config.LOG_FILE)
    args = parser.parse_args()

    validate_control_profile(
        StartupProfile(role="CONTROL", host=args.host, port=args.port),
        sync_interval_seconds=config.SYNC_INTERVAL_SECONDS,
        accrual_mode=config.ACCRUAL_MODE,
        accrual_max_gb=config.ACCRUAL_MAX_GB,
    )
    setup_logging("control", level=args.log_level, log_file=args.log_file)

    print("=" * 60)
    print("GhostLayer Control Plane")
    print("=" * 60)
    print(f"API Address: {args.host}:{args.port}")
    print(f"Database: {config.DATABASE_URL}")
    print(f"Sync interval: {config.SYNC_INTERVAL_SECONDS}s ({config.ACCRUAL_MODE} accrual)")
    print("=" * 60)

    os.environ["GHOSTLAYER_API_PORT"] = str(args.port)
    os.environ["GHOSTLAYER_BIND_HOST"] = args.host

    uvicorn.run("control.service:app", host=args.host, port=args.port, reload=False, log_config=None)


if __name__ == "__main__":
    main()
