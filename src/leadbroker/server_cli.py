"""CLI entry point for the LeadBroker API server."""

import argparse
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="leadbroker-server",
        description="LeadBroker API server",
    )
    parser.add_argument("--host", default=None, help="Bind host (default: LEADBROKER_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: LEADBROKER_PORT or 8080)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, no Redis required",
    )
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not run the background sweeps in this process",
    )
    args = parser.parse_args(argv)

    # Must be set before leadbroker.config is imported
    if args.local:
        os.environ["LEADBROKER_LOCAL_MODE"] = "1"
    if args.no_scheduler:
        os.environ["LEADBROKER_SCHEDULER_ENABLED"] = "0"

    import uvicorn

    from leadbroker.config import settings

    uvicorn.run(
        "leadbroker.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
