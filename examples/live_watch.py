"""
Example: Following a store live, including a chain reorganization.

A background task appends entries while the subscription prints what
arrives. Halfway through, the ledger drops its newest block: the entry in
it is retracted with a Changed signal before anything else is delivered.
Delivered entries and retractions are archived and replayed at the end.
"""

import asyncio
import tempfile

from logchain import (
    ArchiveReader,
    Changed,
    Delivered,
    EntryArchive,
    Errored,
    EventLogClient,
    InMemoryLedger,
    LogChainConfig,
)
from logchain.codec import to_log_entry


async def produce(client: EventLogClient, ledger: InMemoryLedger, sender: str) -> None:
    for i in range(1, 6):
        await client.store.append(1_700_000_000 + i, "INFO", f"heartbeat {i}", sender=sender)
        if i == 3:
            ledger.reorg(1)
        await asyncio.sleep(0.05)


async def main():
    ledger = InMemoryLedger()
    owner, user1 = ledger.accounts[:2]
    address = ledger.deploy_store(owner)
    client = EventLogClient(LogChainConfig(contract_address=address), transport=ledger)

    archive_dir = tempfile.mkdtemp(prefix="logchain-")
    delivered = 0

    with EntryArchive(archive_dir) as archive:
        async with client.subscribe() as subscription:
            producer = asyncio.create_task(produce(client, ledger, user1))

            async for signal in subscription:
                if isinstance(signal, Delivered):
                    entry = to_log_entry(signal.event, client.codec)
                    archive.record_entry(entry)
                    print(f"+ [{entry.block_number}] {entry.message}")
                    delivered += 1
                    if delivered == 5:
                        break
                elif isinstance(signal, Changed):
                    archive.record_changed(signal.ref)
                    print(f"- retracted {signal.ref.transaction_hash[:12]}... (block {signal.ref.block_number})")
                elif isinstance(signal, Errored):
                    print(f"! {signal.cause}")
                    break

            await producer

    print("\n=== Archive replay ===")
    for entry in ArchiveReader(archive_dir).read_entries():
        print(f"  [{entry.block_number}] {entry.message}")


if __name__ == "__main__":
    asyncio.run(main())
