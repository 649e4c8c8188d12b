"""
Streaming Example

Streams a Gemini response (sync and async); each stream is metered once it
ends, including when the consumer stops reading early.

Run: python examples/streaming.py
"""

import asyncio
import os
import sys

# Add parent directory to path for local development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import revenium_google
from revenium_google import usage_metadata

MODEL = "gemini-2.0-flash"


def stream_sync(client):
    print("\n=== Sync stream ===")
    with usage_metadata(taskType="story", traceId="streaming-demo"):
        for chunk in client.models.generate_content_stream(
            model=MODEL, contents="Write a four-line poem about the sea."
        ):
            print(chunk.text or "", end="", flush=True)
    print()


def stream_early_stop(client):
    print("\n=== Early stop ===")
    stream = client.models.generate_content_stream(model=MODEL, contents="Count from 1 to 100, one per line.")
    for i, chunk in enumerate(stream):
        print(chunk.text or "", end="", flush=True)
        if i == 1:
            break
    # Closing the stream meters what was consumed.
    stream.close()
    print("\n[stopped early]")


async def stream_async(client):
    print("\n=== Async stream ===")
    stream = await client.aio.models.generate_content_stream(model=MODEL, contents="Name three planets.")
    async for chunk in stream:
        print(chunk.text or "", end="", flush=True)
    print()


def main():
    client = revenium_google.initialize()

    stream_sync(client)
    stream_early_stop(client)
    asyncio.run(stream_async(client))

    if not client.flush(timeout=30):
        print("⚠️  Some metering calls did not finish")
    print(f"\n📨 Metering: {client.metering_stats()}")


if __name__ == "__main__":
    main()
