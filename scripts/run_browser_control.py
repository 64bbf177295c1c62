#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[browser-control] ws={os.environ.get('MCP_BRIDGE_WS_HOST', '127.0.0.1')}:"
    f"{os.environ.get('MCP_BRIDGE_WS_PORT') or os.environ.get('WS_PORT') or '8765'} | "
    f"http_port={os.environ.get('MCP_BRIDGE_HTTP_PORT') or os.environ.get('PORT') or '8103'} | "
    f"timeout={os.environ.get('MCP_BRIDGE_COMMAND_TIMEOUT', '30')}s",
    file=sys.stderr,
)

from mcp_servers.browser_control.main import main  # noqa: E402

if __name__ == "__main__":
    main()
