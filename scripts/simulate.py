"""
Concurrency Simulation Script

Places many orders at once against a running API, walks each one through
the kitchen statuses, and listens on the restaurant's order stream to
check that every order produced its events.

Run from project root:
    python scripts/simulate.py --restaurant R1 --menu-item ITEM1 --menu-item ITEM2
"""

import argparse
import asyncio
import json
import random
import sys
import time
from collections import Counter
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
KITCHEN_FLOW = ["preparing", "ready", "delivered"]


def generate_order_payload(restaurant_id: str, menu_item_ids: list[str]) -> dict[str, Any]:
    """Random cart for a random table."""
    return {
        "restaurant_id": restaurant_id,
        "table_id": f"table-{random.randint(1, 20)}",
        "client_id": f"sim-client-{random.randint(1000, 9999)}",
        "client_name": random.choice([None, "Guest", "Window seat"]),
        "items": [
            {
                "menu_item_id": random.choice(menu_item_ids),
                "quantity": random.randint(1, 3),
            }
            for _ in range(random.randint(1, 4))
        ],
        "notes": random.choice([None, "No onions", "Birthday", "Allergic to nuts"]),
    }


async def run_order(
    client: httpx.AsyncClient,
    restaurant_id: str,
    menu_item_ids: list[str],
) -> dict[str, Any]:
    """Create one order and push it through the kitchen statuses."""
    start_time = time.time()
    response = await client.post("/", json=generate_order_payload(restaurant_id, menu_item_ids))
    if response.status_code != 200:
        return {"success": False, "error": response.text, "elapsed": time.time() - start_time}

    order = response.json()
    for status in KITCHEN_FLOW:
        await asyncio.sleep(random.uniform(0.01, 0.1))
        update = await client.post(f"/orders/{order['id']}/status", json={"status": status})
        if update.status_code != 200:
            return {"success": False, "error": update.text, "elapsed": time.time() - start_time}

    return {"success": True, "order_id": order["id"], "elapsed": time.time() - start_time}


async def listen(
    base_url: str,
    restaurant_id: str,
    counts: Counter,
    ready: asyncio.Event,
    stream_key: Optional[str],
) -> None:
    """Count stream records per event type until cancelled."""
    headers = {"x-stream-key": stream_key} if stream_key else {}
    async with httpx.AsyncClient(base_url=base_url, timeout=None) as client:
        async with client.stream(
            "GET", f"/restaurants/{restaurant_id}/orders/stream", headers=headers
        ) as response:
            ready.set()
            async for line in response.aiter_lines():
                if line:
                    counts[json.loads(line)["event_type"]] += 1


async def main(args: argparse.Namespace) -> int:
    print("=" * 60)
    print("ORDER FLOW SIMULATION")
    print("=" * 60)
    print(f"Target: {args.base_url}   Orders: {args.orders}   Restaurant: {args.restaurant}")

    counts: Counter = Counter()
    ready = asyncio.Event()
    listener = asyncio.create_task(
        listen(args.base_url, args.restaurant, counts, ready, args.stream_key)
    )
    await asyncio.wait_for(ready.wait(), timeout=10)

    async with httpx.AsyncClient(base_url=args.base_url, timeout=30) as client:
        results = await asyncio.gather(*[
            run_order(client, args.restaurant, args.menu_item)
            for _ in range(args.orders)
        ])

    # Give the stream a moment to drain
    await asyncio.sleep(2)
    listener.cancel()
    try:
        await listener
    except asyncio.CancelledError:
        pass

    succeeded = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    expected_status_events = len(succeeded) * len(KITCHEN_FLOW)

    print(f"\nOrders succeeded: {len(succeeded)}   failed: {len(failed)}")
    if succeeded:
        avg = sum(r["elapsed"] for r in succeeded) / len(succeeded)
        print(f"Average order lifecycle: {avg:.3f}s")
    print(f"Stream 'created' events: {counts['created']} (expected >= {len(succeeded)})")
    print(f"Stream 'status_changed' events: {counts['status_changed']} (expected >= {expected_status_events})")
    for failure in failed[:5]:
        print(f"   failure: {failure['error']}")

    ok = counts["created"] >= len(succeeded) and counts["status_changed"] >= expected_status_events
    print("\nRESULT:", "PASS" if ok else "MISSING EVENTS")
    return 0 if ok else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent order flow simulation")
    parser.add_argument("--base-url", default=API_BASE_URL)
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS)
    parser.add_argument("--restaurant", required=True)
    parser.add_argument("--menu-item", action="append", required=True)
    parser.add_argument("--stream-key", default=None)
    sys.exit(asyncio.run(main(parser.parse_args())))
