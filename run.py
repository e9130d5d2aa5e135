#!/usr/bin/env python3
"""agentlink — agent-to-agent messaging over Waku.

Usage:
    python run.py                                  # default node
    python run.py --name alice --port 7443
    python run.py --name bob --port 7444 --encrypt # second node on same machine

Requires a running nwaku node with the REST API enabled (--waku).
Settings default to AGENTLINK_* environment variables.
"""

import argparse
import logging

import uvicorn

from agentlinkd import __version__
from agentlinkd.config import NodeConfig
from agentlinkd.main import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)


def main():
    defaults = NodeConfig.from_env()
    parser = argparse.ArgumentParser(description="agentlink node daemon")
    parser.add_argument("--name", default=defaults.node_name, help="Agent name (e.g. alice, bob)")
    parser.add_argument("--description", default=defaults.description, help="Agent description")
    parser.add_argument("--capabilities", default=",".join(defaults.capabilities),
                        help="Comma-separated capability tags")
    parser.add_argument("--waku", default=defaults.waku_url, help="nwaku REST API URL")
    parser.add_argument("--encrypt", action="store_true", default=defaults.encrypted,
                        help="Require end-to-end encryption for direct messages")
    parser.add_argument("--announce-interval", type=float, default=defaults.announce_interval,
                        help="Re-announce every N seconds (default: only on request)")
    parser.add_argument("--host", default=defaults.host, help="Host to bind")
    parser.add_argument("--port", type=int, default=defaults.port, help="Port to listen on")
    args = parser.parse_args()

    config = NodeConfig(
        node_name=args.name,
        description=args.description,
        capabilities=[c.strip() for c in args.capabilities.split(",") if c.strip()],
        waku_url=args.waku,
        encrypted=args.encrypt,
        directory_ttl=defaults.directory_ttl,
        discover_max_age=defaults.discover_max_age,
        announce_interval=args.announce_interval,
        inbox_max_pending=defaults.inbox_max_pending,
        poll_interval=defaults.poll_interval,
        host=args.host,
        port=args.port,
    )

    print(f"\n  agentlink v{__version__}")
    print(f"  Agent: {args.name}")
    print(f"  Waku:  {args.waku}")
    print(f"  Encryption: {'ENABLED (X25519 + XSalsa20-Poly1305)' if args.encrypt else 'off'}")
    print(f"  API:   http://{args.host}:{args.port}")
    print()

    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
