#!/usr/bin/env python3
"""Example: two in-process agents exchanging a task over the in-memory bus.

No nwaku needed:

  python examples/ping_pong.py            # plaintext
  python examples/ping_pong.py --encrypt  # end-to-end encrypted
"""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from agentlinkd import A2ANode, NodeConfig
from agentlinkd.events import EventKind
from agentlinkd.transport import InMemoryTransport


async def run(encrypt: bool):
    bus = InMemoryTransport()
    ping = A2ANode(NodeConfig(node_name="ping", encrypted=encrypt), bus)
    pong = A2ANode(NodeConfig(node_name="pong", encrypted=encrypt), bus)

    ping.add_listener(lambda e: e.kind is EventKind.TASK_RESULT and print(f"  [ping] result: {e.data['text']}"))

    await ping.init()
    await pong.init()
    await pong.announce()

    print(f"\n  ping sees: {[a.card.name for a in ping.discover()]}")
    sent = await ping.send_text(pong.pubkey(), "ping")
    print(f"  [ping] sent task {sent.id}")

    for task in pong.poll_tasks():
        print(f"  [pong] got '{task.payload}' from {task.requester[:16]}")
        await pong.respond(task.id, "pong")

    print(f"  [ping] task state: {ping.task_result(sent.id).state.value}\n")

    await ping.shutdown()
    await pong.shutdown()


def main():
    parser = argparse.ArgumentParser(description="In-process ping/pong demo")
    parser.add_argument("--encrypt", action="store_true")
    args = parser.parse_args()
    asyncio.run(run(args.encrypt))


if __name__ == "__main__":
    main()
