#!/usr/bin/env python3
"""
Batch Agent Runner

This module runs many independent agent tasks concurrently. It includes:
- Task queueing by unique key (add / add_many / JSONL datasets)
- Bounded-window execution: at most ``concurrency`` runs in flight
- Per-task failure isolation (an exception becomes a failed AgentResult)
- Success/failure partitioning and token/tool usage statistics
- Trajectory saving in ShareGPT format (from/value pairs)

Each task gets its own AgentContext, so runs never share mutable state.

Usage:
    python batch_runner.py --dataset_file=data.jsonl --client=my_clients:make_client

    # Limit concurrency and save trajectories
    python batch_runner.py --dataset_file=data.jsonl --client=my_clients:make_client \\
                           --concurrency=2 --output_file=out/trajectories.jsonl
"""

import asyncio
import importlib
import inspect
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import fire
from dotenv import load_dotenv

from agent.config import AgentConfig, get_env_path, load_config
from agent.future import Future
from agent.pool import run_bounded
from agent.result import AgentResult
from agent.trajectory import build_trajectory_entry, save_trajectories
from run_agent import AIAgent

logger = logging.getLogger(__name__)


def _extract_tool_stats(results: List[AgentResult]) -> Dict[str, Dict[str, Any]]:
    """
    Extract tool usage statistics from the tool-call records of finished runs.

    Args:
        results (List[AgentResult]): Finished runs

    Returns:
        Dict: Per-tool counts with success/failure rates
    """
    tool_stats = {}

    for result in results:
        for call in result.tool_calls:
            tool_name = call.get("tool", "")

            # Initialize stats for this tool if not exists
            if tool_name not in tool_stats:
                tool_stats[tool_name] = {
                    "count": 0,
                    "success": 0,
                    "failure": 0
                }

            tool_stats[tool_name]["count"] += 1
            if call.get("is_error"):
                tool_stats[tool_name]["failure"] += 1
            else:
                tool_stats[tool_name]["success"] += 1

    # Calculate success rates
    for stats in tool_stats.values():
        stats["success_rate"] = round(stats["success"] / stats["count"] * 100, 2)
        stats["failure_rate"] = round(stats["failure"] / stats["count"] * 100, 2)

    return tool_stats


def load_dataset(dataset_file: str) -> Dict[str, str]:
    """
    Load tasks from a JSONL file.

    Each line needs a 'prompt' field; an optional 'id' field becomes the task
    key, otherwise the entry's zero-based position among valid entries is used.

    Returns:
        Dict: Task key -> prompt, in file order
    """
    dataset_path = Path(dataset_file)
    if not dataset_path.exists():
        raise FileNotFoundError(f"Dataset file not found: {dataset_path}")

    tasks = {}
    with open(dataset_path, 'r', encoding='utf-8') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue

            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Invalid JSON on line %s: %s", line_num, e)
                continue

            if not isinstance(entry, dict) or 'prompt' not in entry:
                logger.warning("Line %s missing 'prompt' field, skipping", line_num)
                continue

            key = str(entry.get("id", len(tasks)))
            if key in tasks:
                logger.warning("Duplicate task id %s on line %s, replacing earlier entry", key, line_num)
            tasks[key] = entry["prompt"]

    if not tasks:
        raise ValueError(f"No valid entries found in dataset file: {dataset_path}")

    return tasks


class BatchRunner:
    """
    Runs queued agent tasks with bounded concurrency and keeps their results.
    """

    def __init__(self, agent: AIAgent):
        """
        Initialize the batch runner.

        Args:
            agent (AIAgent): Agent used for every task; each run gets a fresh context
        """
        self.agent = agent
        self._tasks: Dict[str, str] = {}
        self._results: Dict[str, AgentResult] = {}
        self._background: Set[asyncio.Task] = set()

    # =========================================================================
    # Task queue
    # =========================================================================

    def add(self, key: str, task: str) -> "BatchRunner":
        """Queue a task. Re-adding an existing key replaces its input."""
        self._tasks[key] = task
        return self

    def add_many(self, tasks: Dict[str, str]) -> "BatchRunner":
        """Queue several tasks from a key -> input mapping."""
        for key, task in tasks.items():
            self.add(key, task)
        return self

    @property
    def tasks(self) -> Dict[str, str]:
        return dict(self._tasks)

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run_task(self, key: str) -> AgentResult:
        logger.debug("Processing task: %s", key)
        try:
            result = await self.agent.arun(self._tasks[key])
        except Exception as e:
            logger.error("Task %s failed: %s", key, e)
            return AgentResult.failed(error=str(e) or type(e).__name__)

        if result.success:
            logger.debug("Task %s completed in %s iterations", key, result.iterations)
        else:
            logger.debug("Task %s failed: %s", key, result.error)
        return result

    async def arun(self, concurrency: int = 3) -> Dict[str, AgentResult]:
        """
        Run every queued task with at most ``concurrency`` runs in flight.

        Returns:
            Dict: Task key -> AgentResult, in the order the tasks were added
        """
        keys = list(self._tasks)
        logger.info("Processing %s tasks with concurrency %s", len(keys), concurrency)

        results = await run_bounded(keys, self._run_task, concurrency)
        for key, result in zip(keys, results):
            self._results[key] = result

        logger.info("Batch processing complete")
        return {key: self._results[key] for key in keys}

    def run(self, concurrency: int = 3) -> Dict[str, AgentResult]:
        """Blocking wrapper around ``arun``."""
        return asyncio.run(self.arun(concurrency))

    def run_async(self, concurrency: Optional[int] = None) -> Dict[str, Future]:
        """
        Start every queued task and return a Future per task key immediately.

        Requires a running event loop. ``concurrency`` optionally bounds how
        many runs are in flight; by default all start at once.
        """
        if concurrency is not None and concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        loop = asyncio.get_running_loop()
        semaphore = asyncio.Semaphore(concurrency) if concurrency else None
        futures = {}

        for key in self._tasks:
            future = Future()

            async def _run(key=key, future=future):
                try:
                    if semaphore is None:
                        result = await self._run_task(key)
                    else:
                        async with semaphore:
                            result = await self._run_task(key)
                    self._results[key] = result
                    future.resolve(result)
                except Exception as e:
                    future.reject(e)

            background = loop.create_task(_run())
            self._background.add(background)
            background.add_done_callback(self._background.discard)
            futures[key] = future

        return futures

    # =========================================================================
    # Results
    # =========================================================================

    def get_result(self, key: str) -> Optional[AgentResult]:
        return self._results.get(key)

    def get_results(self) -> Dict[str, AgentResult]:
        return dict(self._results)

    def get_successful(self) -> Dict[str, AgentResult]:
        return {key: result for key, result in self._results.items() if result.success}

    def get_failed(self) -> Dict[str, AgentResult]:
        return {key: result for key, result in self._results.items() if not result.success}

    def get_stats(self) -> Dict[str, Any]:
        """
        Aggregate statistics over the stored results.

        Returns:
            Dict: total/successful/failed counts, success rate (0.0-1.0),
                  token totals and per-tool usage statistics
        """
        results = list(self._results.values())
        total = len(results)
        successful = sum(1 for result in results if result.success)

        input_tokens = sum(result.input_tokens for result in results)
        output_tokens = sum(result.output_tokens for result in results)

        return {
            "total_requests": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": successful / total if total else 0.0,
            "total_tokens": {
                "input": input_tokens,
                "output": output_tokens,
                "total": input_tokens + output_tokens,
            },
            "tool_statistics": _extract_tool_stats(results),
        }

    def save_results(self, output_file: str, model: str = None) -> Path:
        """Save every stored result as a JSONL trajectory entry."""
        entries = [
            build_trajectory_entry(key, result, model=model)
            for key, result in self._results.items()
        ]
        return save_trajectories(entries, output_file)

    def reset(self) -> None:
        """Clear stored results; queued tasks are kept for another run."""
        self._results = {}

    def clear(self) -> None:
        """Clear both queued tasks and stored results."""
        self._tasks = {}
        self._results = {}


def _load_object(path: str) -> Any:
    """Import ``package.module:attribute`` and call it if it is a factory."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got {path!r}")

    obj = getattr(importlib.import_module(module_name), attr)
    if inspect.isclass(obj) or inspect.isroutine(obj):
        obj = obj()
    return obj


def main(
    dataset_file: str = None,
    client: str = None,
    tools: str = None,
    output_file: str = None,
    concurrency: int = None,
    max_iterations: int = None,
    model: str = None,
    config_file: str = None,
    verbose: bool = False,
):
    """
    Run a batch of agent tasks from a JSONL dataset.

    Args:
        dataset_file (str): Path to JSONL file with 'prompt' (and optional 'id') in each entry
        client (str): 'module:attribute' of the model client or a factory returning one
        tools (str): 'module:attribute' of a list of Tools or a factory returning one (optional)
        output_file (str): Where to write trajectories as JSONL (optional)
        concurrency (int): Maximum concurrent runs (default: from config, 3)
        max_iterations (int): Iteration budget per run (default: from config, 10)
        model (str): Model name (default: from config)
        config_file (str): Alternative config.yaml path
        verbose (bool): Enable debug logging

    Examples:
        python batch_runner.py --dataset_file=data.jsonl --client=my_clients:make_client
        python batch_runner.py --dataset_file=data.jsonl --client=my_clients:make_client \\
                               --tools=my_tools:TOOLS --concurrency=5 --output_file=run.jsonl
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    env_path = get_env_path()
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
    load_dotenv(override=False)

    # Validate required arguments
    if not dataset_file:
        print("❌ Error: --dataset_file is required")
        return 1

    if not client:
        print("❌ Error: --client is required")
        return 1

    config_data = load_config(Path(config_file) if config_file else None)
    if max_iterations is not None:
        config_data["max_iterations"] = max_iterations
    if model:
        config_data["model"] = model
    concurrency = concurrency or config_data.get("batch", {}).get("concurrency", 3)

    try:
        config = AgentConfig.from_dict(config_data)
        agent = AIAgent(
            client=_load_object(client),
            tools=_load_object(tools) if tools else None,
            config=config,
        )
        runner = BatchRunner(agent).add_many(load_dataset(dataset_file))

        start_time = time.time()
        runner.run(concurrency=concurrency)
        duration = round(time.time() - start_time, 2)

        if output_file:
            runner.save_results(output_file, model=config.model)

    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        logger.debug("Batch run aborted", exc_info=True)
        return 1

    stats = runner.get_stats()

    # Print summary
    print("\n" + "=" * 70)
    print("📊 BATCH PROCESSING COMPLETE")
    print("=" * 70)
    print(f"✅ Successful: {stats['successful']}/{stats['total_requests']} "
          f"({stats['success_rate'] * 100:.1f}%)")
    print(f"❌ Failed: {stats['failed']}")
    print(f"🔢 Tokens: {stats['total_tokens']['input']} in / {stats['total_tokens']['output']} out")
    print(f"⏱️  Total duration: {duration}s")

    tool_stats = stats["tool_statistics"]
    print(f"\n📈 Tool Usage Statistics:")
    print("-" * 70)
    if tool_stats:
        sorted_tools = sorted(tool_stats.items(), key=lambda x: x[1]["count"], reverse=True)

        print(f"{'Tool Name':<25} {'Count':<10} {'Success':<10} {'Failure':<10} {'Success Rate':<12}")
        print("-" * 70)
        for tool_name, tool_stat in sorted_tools:
            print(
                f"{tool_name:<25} "
                f"{tool_stat['count']:<10} "
                f"{tool_stat['success']:<10} "
                f"{tool_stat['failure']:<10} "
                f"{tool_stat['success_rate']:.1f}%"
            )
    else:
        print("No tool calls were made during this run.")

    for key, result in runner.get_failed().items():
        print(f"   ❌ {key}: {result.error}")

    if output_file:
        print(f"\n💾 Trajectories saved to: {output_file}")

    return 0


def _cli():
    fire.Fire(main)


if __name__ == "__main__":
    _cli()
