"""Frozen-binary entrypoint for the Auto Accept coordinator.

The bundled executable starts the coordinator service (HTTP status surface
plus polling) by default. The diagnostics CLI ships in the same binary:
    auto-accept-coordinator cli lease --ide cursor
"""

from __future__ import annotations

import sys

from auto_accept.app import main as app_main
from auto_accept.debug import main as cli_main


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "cli":
        cli_main(sys.argv[2:])
    else:
        app_main()
