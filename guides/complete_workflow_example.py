"""Example running the full meeting pipeline against the configured providers.

Requires OPENAI_API_KEY and RESEND_API_KEY in the environment.
"""

import asyncio
import sys
from pathlib import Path

from labflow import AudioPayload, build_coordinator


async def main(audio_path: str, recipient: str):
    """Transcribe, extract, render and deliver one recording."""
    # Coordinator wired from config.yaml / environment
    coordinator = build_coordinator()

    path = Path(audio_path)
    audio = AudioPayload(data=path.read_bytes(), content_type="audio/webm", filename=path.name)

    outcome = await coordinator.run_complete_workflow(
        audio,
        [recipient],
        initiator_id="demo-user",
        lab_name="Demo Lab",
        attendees=["Alice", "Bob"],
    )

    print(f"Workflow {outcome.workflow_id}: {outcome.status}")
    for step in await coordinator.list_workflow_steps(outcome.workflow_id):
        print(f"  {step.step_name}: {step.status.value} ({step.processing_time_ms}ms)")
    if outcome.error_message:
        print(f"  {outcome.error_message}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1], sys.argv[2]))
