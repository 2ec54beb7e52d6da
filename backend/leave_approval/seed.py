"""Seed script for development data.

Submits a handful of leave requests against a running API and drives some of
them to a decision, so every status shows up in the UI.

Run with:  python -m leave_approval.seed
"""

from __future__ import annotations

import asyncio
import sys
from datetime import date, timedelta
from typing import Any

import httpx

BASE_URL = "http://localhost:8000"
REQUESTS_URL = f"{BASE_URL}/api/requests"
APPROVER = "manager@example.com"


def _leave(request_id: str, name: str, email: str, days_ahead: int, length: int, reason: str) -> dict[str, Any]:
    start = date.today() + timedelta(days=days_ahead)
    return {
        "request_id": request_id,
        "employee_name": name,
        "employee_email": email,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=length)).isoformat(),
        "reason": reason,
        "approver_email": APPROVER,
    }


SEED_REQUESTS = [
    (_leave("seed-alice-holiday", "Alice Johnson", "alice@example.com", 20, 5, "Family visit"), "approve"),
    (_leave("seed-bob-conference", "Bob Smith", "bob@example.com", 10, 2, "Conference"), "reject"),
    (_leave("seed-carol-move", "Carol Williams", "carol@example.com", 30, 1, "Moving house"), "cancel"),
    (_leave("seed-dave-trip", "Dave Brown", "dave@example.com", 45, 7, "Hiking trip"), None),
]


async def _submit(client: httpx.AsyncClient, payload: dict[str, Any]) -> bool:
    resp = await client.post(REQUESTS_URL, json=payload)
    if resp.status_code == 201:
        print(f"  [OK] Submitted {payload['request_id']} ({payload['employee_name']})")
        return True
    if resp.status_code == 409:
        print(f"  [SKIP] {payload['request_id']} already exists")
        return False
    print(f"  [ERROR] Submitting {payload['request_id']}: {resp.status_code} {resp.text}")
    return False


async def _signal(client: httpx.AsyncClient, workflow_id: str, action: str) -> None:
    body: dict[str, Any]
    if action == "cancel":
        body = {"reason": "Plans changed"}
    else:
        body = {"comment": f"Seeded {action}", "decided_by": APPROVER}
    resp = await client.post(f"{REQUESTS_URL}/{workflow_id}/{action}", json=body)
    if resp.status_code == 200:
        print(f"  [OK] {action} {workflow_id} -> {resp.json()['status']}")
    else:
        print(f"  [ERROR] {action} {workflow_id}: {resp.status_code}")


async def seed_requests(client: httpx.AsyncClient) -> None:
    print("\n--- Leave requests ---")
    for payload, action in SEED_REQUESTS:
        created = await _submit(client, payload)
        if created and action is not None:
            await _signal(client, payload["request_id"], action)


async def main() -> None:
    print("=" * 60)
    print("  Leave Approval Workflow - Development Seed Script")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            resp = await client.get(f"{BASE_URL}/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            sys.exit(1)

        await seed_requests(client)

    print("\n" + "=" * 60)
    print("  Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
