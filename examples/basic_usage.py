"""
Example: Using logchain against the in-memory development ledger.

This example demonstrates:
1. Deploying a store
2. Appending entries
3. Pausing and transferring ownership
4. Querying by block range and entry type
"""

import asyncio
import time

from logchain import (
    EventLogClient,
    InMemoryLedger,
    LogChainConfig,
    NotAllowed,
    Unauthorized,
)


async def main():
    ledger = InMemoryLedger()
    owner, user1, user2 = ledger.accounts[:3]
    address = ledger.deploy_store(owner)

    config = LogChainConfig(contract_address=address)
    client = EventLogClient(config, transport=ledger)

    print("=== Appending Entries ===")
    now = int(time.time())
    await client.store.append(now, "INFO", "client login success", sender=user1)
    await client.store.append(now + 1, "WARN", "slow response 2.3s", sender=user2)
    await client.store.append(now + 2, "ERROR", "payment gateway timeout", sender=user1)

    for ts in range(100, 105):
        await client.store.append(ts, "BATCH", f"batch item {ts}", sender=user2)

    status = await client.status()
    print(f"Store {status.address} at block {status.latest_block} ({status.status})")

    print("\n=== Pausing ===")
    await client.store.pause(sender=owner)
    try:
        await client.store.append(now, "INFO", "dropped", sender=user1)
    except NotAllowed as e:
        print(f"Append rejected: {e}")

    print("\n=== Transferring Ownership ===")
    await client.store.transfer_ownership(user1, sender=owner)
    try:
        await client.store.unpause(sender=owner)
    except Unauthorized as e:
        print(f"Old owner rejected: {e}")
    await client.store.unpause(sender=user1)
    print(f"New owner: {(await client.status()).owner}")

    print("\n=== Querying ===")
    for entry in await client.query(from_block=0):
        print(f"  [{entry.block_number}] {entry.entry_type:<6} {entry.message}")

    errors = await client.query(entry_type="ERROR")
    print(f"\n{len(errors)} ERROR entries")

    batch = await client.query(entry_type="BATCH")
    print(f"BATCH timestamps: {sorted(e.user_timestamp for e in batch)}")


if __name__ == "__main__":
    asyncio.run(main())
