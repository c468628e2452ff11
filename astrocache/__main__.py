from __future__ import annotations

import os
import sys


def run_cli() -> None:
    """Application Entrypoint."""
    os.environ.setdefault("LITESTAR_APP", "astrocache.server.asgi:create_app")
    try:
        from litestar.cli.main import litestar_group
    except ImportError as exc:
        print(  # noqa: T201
            "Could not load required libraries. ",
            "Please check your installation and make sure you activated any necessary virtual environment",
        )
        print(exc)  # noqa: T201
        sys.exit(1)
    sys.exit(litestar_group())  # pyright: ignore[reportUnknownMemberType]


if __name__ == "__main__":
    run_cli()
