#!/usr/bin/env python3
"""
Trigger one SLA sweep

Meant for cron or any external scheduler (every 5-10 minutes):

    */5 * * * * python scripts/trigger_sla_check.py --base-url https://desk.example.com

Reads CRON_SECRET (or SERVICE_SECRET) from the environment / .env and exits
non-zero when the sweep fails or reports errors.
"""
import argparse
import asyncio
import json
import os
import sys

import httpx
from dotenv import load_dotenv

load_dotenv()

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
SLA_CHECK_PATH = "/api/v1/jobs/sla-check"


async def trigger(base_url: str, timeout: float) -> int:
    secret = os.getenv("CRON_SECRET") or os.getenv("SERVICE_SECRET")
    headers = {"Authorization": f"Bearer {secret}"} if secret else {}

    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        try:
            response = await client.post(SLA_CHECK_PATH, headers=headers)
        except httpx.HTTPError as e:
            print(f"SLA check request failed: {e}", file=sys.stderr)
            return 2

    if response.status_code != 200:
        print(f"SLA check returned {response.status_code}: {response.text}", file=sys.stderr)
        return 1

    body = response.json()
    print(json.dumps(body, indent=2))
    return 1 if body.get("result", {}).get("errors") else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Trigger the SLA escalation sweep")
    parser.add_argument("--base-url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout in seconds")
    args = parser.parse_args()

    sys.exit(asyncio.run(trigger(args.base_url, args.timeout)))


if __name__ == "__main__":
    main()
