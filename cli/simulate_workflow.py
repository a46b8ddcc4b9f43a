#!/usr/bin/env python3
"""
Simulate a workflow JSON file locally.
Prints every execution event and a summary; exits 1 if any node failed.
"""

import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any

import structlog

from src.core.execution_engine import ExecutionError, ExecutionEvent, SimulatedExecutionEngine
from src.models.document import N8nWorkflow

logger = structlog.get_logger()


def load_workflow(path: Path) -> N8nWorkflow:
    """Load a workflow document from a JSON file."""
    return N8nWorkflow.model_validate(json.loads(path.read_text(encoding="utf-8")))


async def simulate_file(
    path: Path,
    seed: int | None = None,
    failure_rate: float | None = None,
    time_scale: float | None = None,
) -> list[ExecutionEvent]:
    """Simulate a workflow file and return the emitted events.

    Args:
        path: Workflow JSON file
        seed: Seed for reproducible outcomes
        failure_rate: Override for the per-node failure probability
        time_scale: Override for the delay multiplier (0 = instant)
    """
    workflow = load_workflow(path)

    logger.info("simulating_workflow", path=str(path), node_count=len(workflow.nodes))

    engine = SimulatedExecutionEngine(
        time_scale=time_scale,
        failure_rate=failure_rate,
        rng=random.Random(seed) if seed is not None else None,
    )
    return await engine.run(workflow)


def format_event(event: ExecutionEvent) -> str:
    """One line per event."""
    data: dict[str, Any] = event.data
    if event.type == "node_start":
        return f"  ▶ {data['node_name']} ({data['node_type']})"
    if event.type == "node_complete":
        return f"  ✓ {data['node_name']} in {data['execution_time_ms']} ms"
    if event.type == "node_error":
        return f"  ✗ {data['node_name']}: {data['error']}"
    if event.type == "node_skipped":
        return f"  - {data['node_name']} (disabled)"
    if event.type == "start":
        return f"Starting '{data['workflow_name']}' ({data['node_count']} nodes)"
    return f"{event.type}: {data.get('status', '')}"


async def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Run a simulated execution of an n8n workflow JSON file"
    )
    parser.add_argument("workflow", type=Path, help="Path to workflow JSON")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=None,
        help="Probability that a node fails (default from settings)",
    )
    parser.add_argument(
        "--time-scale",
        type=float,
        default=None,
        help="Delay multiplier, 0 for instant runs (default from settings)",
    )
    parser.add_argument("--json", action="store_true", help="Print raw events as JSON")

    args = parser.parse_args()

    print(f"\n{'=' * 60}")
    print(f"Workflow: {args.workflow}")
    print(f"{'=' * 60}\n")

    try:
        events = await simulate_file(
            args.workflow,
            seed=args.seed,
            failure_rate=args.failure_rate,
            time_scale=args.time_scale,
        )
    except (OSError, ValueError) as e:
        print(f"\n✗ Could not load workflow: {e}\n")
        sys.exit(2)
    except ExecutionError as e:
        logger.error("simulation_aborted", error_code=e.error_code, error=str(e))
        print(f"\n✗ Simulation aborted ({e.error_code}): {e}\n")
        sys.exit(1)

    for event in events:
        print(json.dumps(event.to_dict(), default=str) if args.json else format_event(event))

    summary = events[-1].data["summary"]

    print(f"\n{'=' * 60}")
    print("SUMMARY")
    print(f"{'=' * 60}")
    print(json.dumps(summary, indent=2))
    print()

    if summary["error"]:
        print(f"✗ {summary['error']} node(s) failed")
        sys.exit(1)

    print("✓ All nodes completed")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
