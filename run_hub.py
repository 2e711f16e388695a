"""Run the GrowHub automation hub."""

import sys

if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")

from growhub.workers.hub_cli import main

if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
