#!/usr/bin/env python3
"""Example: an agent that echoes every task it receives.

This agent:
  1. Connects to its own agentlink node
  2. Polls for new tasks
  3. Responds to each one with "Echo: <text>"

Usage:
  # Terminal 1: Start the agent's node
  python run.py --name echo --port 7444

  # Terminal 2: Run the agent
  python examples/echo_agent.py --node http://localhost:7444

  # Terminal 3: Start a second node and send it a task
  python run.py --name alice --port 7443
  # then: AgentLinkClient("http://localhost:7443").send("<echo pubkey>", "hello")
"""

import argparse
import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from agentlink import AgentLinkClient


def handle_task(client: AgentLinkClient, task: dict):
    print(f"\n  Task {task['id']} from {task['requester'][:16]}")
    print(f"  Text: {task['payload'][:200]}")
    client.respond(task["id"], f"Echo: {task['payload']}")
    print("  -> Responded")


def main():
    parser = argparse.ArgumentParser(description="Echo agent")
    parser.add_argument("--node", default="http://localhost:7444", help="agentlink node URL")
    parser.add_argument("--poll", type=float, default=2, help="Poll interval in seconds")
    args = parser.parse_args()

    client = AgentLinkClient(args.node)
    me = client.identity()
    print(f"\n  Echo agent running")
    print(f"  Name:   {me['name']}")
    print(f"  Pubkey: {me['pubkey']}")
    print(f"  Waiting for tasks...\n")

    while True:
        try:
            for task in client.tasks():
                handle_task(client, task)
        except KeyboardInterrupt:
            print("\n  Agent stopped.")
            break
        except Exception as e:
            print(f"  Error: {e}")
        time.sleep(args.poll)


if __name__ == "__main__":
    main()
