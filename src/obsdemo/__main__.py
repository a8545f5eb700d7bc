"""Command-line entry point: ``python -m obsdemo`` / ``observability-demo``."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from obsdemo._server import DEFAULT_HOST, DEFAULT_PORT, run


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="observability-demo",
        description="Serve the demo API with traces, metrics, logs and profiles exported.",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="bind address (default: %(default)s)")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="listen port (default: %(default)s)"
    )
    args = parser.parse_args(argv)
    return run(host=args.host, port=args.port)


if __name__ == "__main__":
    sys.exit(main())
