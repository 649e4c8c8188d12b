"""
Basic Example

Meters a single Gemini call with business metadata attached.

Prerequisites (environment or .env file):
    REVENIUM_METERING_API_KEY=hak_...
    GOOGLE_API_KEY=...                  # Gemini Developer API
    # or GOOGLE_CLOUD_PROJECT / GOOGLE_CLOUD_LOCATION for Vertex AI

Run: python examples/basic.py
"""

import logging
import os
import sys

# Add parent directory to path for local development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from google.genai import types

import revenium_google
from revenium_google import ReveniumError, usage_metadata

logging.basicConfig(level=logging.INFO)


def main():
    try:
        client = revenium_google.initialize()
    except ReveniumError as e:
        print(f"❌ Could not initialize: {e}")
        return

    print("\n" + "=" * 50)
    print(f"Gemini via {client.provider.value}")
    print("=" * 50)

    with usage_metadata(
        organizationId="acme-corp",
        productId="support-bot",
        taskType="faq-answer",
        subscriber={"id": "user-123", "email": "user@example.com"},
    ):
        response = client.models.generate_content(
            model="gemini-2.0-flash",
            contents="What is the capital of France? Answer in one sentence.",
            config=types.GenerateContentConfig(temperature=0.2),
        )

    print(f"\n✅ Response: {response.text}")
    usage = response.usage_metadata
    if usage:
        print(f"\n📊 Tokens: {usage.prompt_token_count} in, {usage.candidates_token_count} out")

    # Metering runs in the background; wait for it before exiting.
    client.close()
    print(f"\n📨 Metering: {client.metering_stats()}")


if __name__ == "__main__":
    main()
