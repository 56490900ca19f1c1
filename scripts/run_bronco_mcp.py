#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[bronco] bridge=ws://{os.environ.get('BRONCO_HOST', '127.0.0.1')}:{os.environ.get('BRONCO_PORT', '9876')} | "
    f"recordings={os.environ.get('BRONCO_RECORDINGS_DIR', '~/.bronco-browser-recordings')}",
    file=sys.stderr,
)

from mcp_servers.bronco.main import main  # noqa: E402

if __name__ == "__main__":
    main()
