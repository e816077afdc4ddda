"""
Call Simulation Script

Walks the voice agent's tool flow against a running server:
    inbound -> search -> draft -> price -> submit -> resubmit
then fires concurrent submits sharing one client_order_id to check that
exactly one POS order comes out.

Requires a seeded restaurant (python scripts/seed.py).
Run from project root: python scripts/simulate.py
"""

import asyncio
import sys
import os
import time
import uuid
import argparse
from datetime import datetime
from typing import Any

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configuration
API_BASE_URL = "http://localhost:8001"
RESTAURANT_PHONE = "+15551234567"
CALLER_PHONE = "+15550002222"


def check(label: str, response: httpx.Response) -> dict[str, Any]:
    """Print one step's outcome and return its JSON body."""
    body = response.json()
    if response.status_code == 200:
        print(f"   [ok]   {label}")
    else:
        print(f"   [fail] {label}: {response.status_code} {body.get('error')} {body.get('details')}")
        raise SystemExit(1)
    return body


def burger_selection() -> list[dict[str, Any]]:
    return [
        {
            "item_id": "item-classic-burger",
            "quantity": 2,
            "modifiers": [{"group_id": "mod-cheese", "option_ids": ["opt-cheddar"]}],
        }
    ]


# =============================================================================
# SINGLE CALL FLOW
# =============================================================================

async def run_call_flow(client: httpx.AsyncClient) -> dict[str, Any]:
    """One caller ordering two cheeseburgers."""
    print("\n" + "=" * 70)
    print("CALL FLOW")
    print("=" * 70)

    health = check("health", await client.get(f"{API_BASE_URL}/health"))
    print(f"          database={health['database']} providers={health['providers']}")

    call = check(
        "inbound call",
        await client.post(
            f"{API_BASE_URL}/inbound",
            json={"to_number": RESTAURANT_PHONE, "from_number": CALLER_PHONE},
        ),
    )
    restaurant_id = call["restaurant_id"]
    print(f"          restaurant={call['restaurant_name']} call={call['call_id']}")

    results = check(
        "search 'cheeseburger'",
        await client.post(
            f"{API_BASE_URL}/tools/search_menu",
            json={"restaurant_id": restaurant_id, "query": "cheeseburger"},
        ),
    )["results"]
    print(f"          top hit: {results[0]['name'] if results else '-'}")

    draft = check(
        "draft order",
        await client.post(
            f"{API_BASE_URL}/tools/draft_order",
            json={
                "restaurant_id": restaurant_id,
                "call_id": call["call_id"],
                "selections": burger_selection(),
                "pickup_name": "Sam",
                "pickup_phone": CALLER_PHONE,
            },
        ),
    )
    print(f"          subtotal={draft['draft_summary']['subtotal_cents']} cents")

    priced = check(
        "price order",
        await client.post(
            f"{API_BASE_URL}/tools/price_order",
            json={"restaurant_id": restaurant_id, "order_id": draft["order_id"]},
        ),
    )
    print(f"          mode={priced['pricing_mode']} totals={priced['totals']}")

    client_order_id = f"sim-{uuid.uuid4().hex[:12]}"
    submit_payload = {
        "restaurant_id": restaurant_id,
        "order_id": draft["order_id"],
        "client_order_id": client_order_id,
    }
    first = check(
        "submit order",
        await client.post(f"{API_BASE_URL}/tools/submit_order", json=submit_payload),
    )
    again = check(
        "resubmit same key",
        await client.post(f"{API_BASE_URL}/tools/submit_order", json=submit_payload),
    )
    same = first["provider_order_id"] == again["provider_order_id"]
    print(f"          {first['confirmation_text']} / {again['confirmation_text']}")
    print(f"          same provider order: {same}")

    return {"restaurant_id": restaurant_id, "call_id": call["call_id"], "idempotent": same}


# =============================================================================
# CONCURRENT SUBMITS
# =============================================================================

async def run_concurrent_submits(
    client: httpx.AsyncClient,
    restaurant_id: str,
    call_id: str,
    num_requests: int,
) -> bool:
    """Fire num_requests submits with one key at the same draft."""
    print("\n" + "=" * 70)
    print(f"CONCURRENT SUBMITS ({num_requests} requests, one client_order_id)")
    print("=" * 70)

    draft = check(
        "draft order",
        await client.post(
            f"{API_BASE_URL}/tools/draft_order",
            json={"restaurant_id": restaurant_id, "call_id": call_id, "selections": burger_selection()},
        ),
    )
    payload = {
        "restaurant_id": restaurant_id,
        "order_id": draft["order_id"],
        "client_order_id": f"sim-{uuid.uuid4().hex[:12]}",
    }

    start_time = time.time()
    responses = await asyncio.gather(
        *[client.post(f"{API_BASE_URL}/tools/submit_order", json=payload) for _ in range(num_requests)]
    )
    elapsed = round(time.time() - start_time, 2)

    submitted = [r.json() for r in responses if r.status_code == 200]
    fresh = [body for body in submitted if not body.get("already_submitted")]
    in_flight = sum(1 for r in responses if r.status_code == 409)
    statuses = sorted({r.status_code for r in responses})

    final = check("resubmit", await client.post(f"{API_BASE_URL}/tools/submit_order", json=payload))
    references = {body["provider_order_id"] for body in submitted} | {final["provider_order_id"]}

    print(f"   statuses: {statuses}")
    print(f"   POS submissions: {len(fresh)}, refused while in flight: {in_flight}")
    print(f"   distinct provider orders: {len(references)}")
    print(f"   total time: {elapsed}s")
    return len(fresh) == 1 and len(references) == 1 and set(statuses) <= {200, 409}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Call Simulation Script")
    parser.add_argument("--base-url", default=API_BASE_URL, help="Server base URL")
    parser.add_argument("--requests", type=int, default=10, help="Concurrent submits")
    args = parser.parse_args()
    API_BASE_URL = args.base_url

    async def main() -> bool:
        print("=" * 70)
        print(f"Target: {API_BASE_URL}")
        print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
        async with httpx.AsyncClient(timeout=30.0) as client:
            flow = await run_call_flow(client)
            single = await run_concurrent_submits(
                client, flow["restaurant_id"], flow["call_id"], args.requests
            )
        print("\n" + "=" * 70)
        print(f"Resubmit idempotent: {flow['idempotent']}")
        print(f"Concurrent submits single order: {single}")
        print("=" * 70)
        return flow["idempotent"] and single

    sys.exit(0 if asyncio.run(main()) else 1)
