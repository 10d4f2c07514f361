#!/usr/bin/env python3
"""CLI script to simulate a disaster alert against a running InstaRelief API.

Usage:
    ADMIN_SECRET=... python scripts/simulate_disaster.py --zip 70401
    python scripts/simulate_disaster.py --zip 39501 --severity Moderate --event Flood \
        --base-url http://localhost:8000 --admin-secret dev-secret

Extreme and Severe simulations credit the standard payout to every active
user in the ZIP; other severities only send an informational email.
"""

import argparse
import json
import os
import sys

import httpx


def main():
    parser = argparse.ArgumentParser(description="Simulate a disaster alert for one ZIP code")
    parser.add_argument("--zip", default="70401", help="5-digit ZIP code")
    parser.add_argument("--severity", default="Extreme", help="Extreme, Severe, Moderate, Minor")
    parser.add_argument("--event", default="Hurricane", help="Event name, e.g. Flood")
    parser.add_argument("--area-desc", default=None, help="Override the NWS-style area text")
    parser.add_argument(
        "--base-url", default=os.getenv("INSTARELIEF_URL", "http://localhost:8000")
    )
    parser.add_argument("--admin-secret", default=os.getenv("ADMIN_SECRET"))
    args = parser.parse_args()

    if not args.admin_secret:
        parser.error("--admin-secret or ADMIN_SECRET is required")

    body = {"zip": args.zip, "severity": args.severity, "event": args.event}
    if args.area_desc:
        body["area_desc"] = args.area_desc

    print(f"Simulating {args.event} ({args.severity}) for ZIP {args.zip} at {args.base_url}")
    try:
        resp = httpx.post(
            f"{args.base_url.rstrip('/')}/api/v1/admin/alerts/simulate",
            json=body,
            headers={"Authorization": f"Bearer {args.admin_secret}"},
            timeout=60.0,
        )
    except httpx.HTTPError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        sys.exit(1)

    if resp.status_code != 200:
        print(f"Error ({resp.status_code}): {resp.text}", file=sys.stderr)
        sys.exit(1)

    data = resp.json()
    result = data["result"]
    print(f"\n{data['message']} (alert {data['alert_id']})")
    print(
        f"  users={result['users_found']} notified={result['notified']} "
        f"paid={result['paid']} skipped={result['skipped']}"
    )
    for user in result["users"]:
        state = "skipped" if user["skipped"] else ("paid" if user["paid"] else "notified")
        suffix = f" ({user['error']})" if user.get("error") else ""
        print(f"  {user['email']}: {state}{suffix}")

    if os.getenv("VERBOSE"):
        print(json.dumps(data, indent=2))


if __name__ == "__main__":
    main()
