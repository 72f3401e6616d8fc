"""Example showing batched fan-out with partial failures."""

import asyncio

from labflow import BulkDispatcher


async def main():
    dispatcher = BulkDispatcher(batch_size=2, batch_pause_ms=500)

    async def send(summary: str, recipient: str) -> str:
        if recipient.startswith("bounce"):
            raise RuntimeError("mailbox unavailable")
        await asyncio.sleep(0.1)
        return f"msg-{recipient}"

    recipients = ["alice@lab.edu", "bounce@lab.edu", "carol@lab.edu", "dave@lab.edu", "erin@lab.edu"]
    report = await dispatcher.dispatch("weekly summary", recipients, send)

    print(f"Sent {len(report.succeeded)} of {report.total}")
    for failure in report.failed:
        print(f"  {failure.target}: {failure.error}")


if __name__ == "__main__":
    asyncio.run(main())
