#!/usr/bin/env python3
"""
Командная строка: выполнение одного задания через очередь.
"""

import argparse
import json
import signal
import sys
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional

from .core.registry import QueueRegistry
from .exceptions import ConfigurationError, TaskCancelledError
from .models.worker import JobConfig, WorkerResult
from .utils.config import Config, load_config, load_config_from_env
from .utils.logger import get_logger, setup_logging
from .workers import create_workers


logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Парсер аргументов task-engine."""
    parser = argparse.ArgumentParser(
        prog="task-engine",
        description="Run a single job through a task queue and print the worker result as JSON"
    )
    parser.add_argument("--config", type=str, help="Path to a YAML or JSON configuration file")
    parser.add_argument("--log-level", type=str, help="Logging level (overrides configuration)")
    parser.add_argument("--timeout", type=int, help="Timeout in milliseconds")

    subparsers = parser.add_subparsers(dest="worker_type", required=True)

    exec_parser = subparsers.add_parser("exec", help="Run a shell command")
    exec_parser.add_argument("command", help="Command text")
    exec_parser.add_argument("--shell", type=str, help="pwsh, powershell5, bash, sh or cmd")
    exec_parser.add_argument("--cwd", type=str, help="Working directory")

    ai_parser = subparsers.add_parser("ai", help="Run an LLM prompt")
    ai_parser.add_argument("prompt", help="Prompt text")
    ai_parser.add_argument("--model", type=str, help="Model name")

    skill_parser = subparsers.add_parser("skill", help="Invoke a named skill")
    skill_parser.add_argument("skill_name", help="Skill name")
    skill_parser.add_argument("--action", type=str, help="Skill action")
    skill_parser.add_argument("--params", type=str, help="Parameters as JSON or plain text")
    skill_parser.add_argument("--model", type=str, help="Model name")

    return parser


def job_from_args(args: argparse.Namespace) -> JobConfig:
    """Сборка JobConfig из аргументов подкоманды."""
    job = JobConfig(timeout=args.timeout)

    if args.worker_type == "exec":
        job.command = args.command
        job.shell = args.shell
        job.cwd = args.cwd
    elif args.worker_type == "ai":
        job.prompt = args.prompt
        job.model = args.model
    else:
        job.skill_name = args.skill_name
        job.action = args.action
        job.model = args.model
        if args.params:
            try:
                job.params = json.loads(args.params)
            except json.JSONDecodeError:
                job.params = args.params

    return job


def run_job(config: Config, worker_type: str, job: JobConfig) -> WorkerResult:
    """Выполнение задания через очередь; Ctrl+C отменяет задачу."""
    registry = QueueRegistry(default_concurrency=config.default_concurrency)
    queue = registry.get_queue("cli")
    worker = create_workers(config.workers)[worker_type]

    task_id, future = queue.enqueue(worker.as_task(job), name=f"cli-{worker_type}")

    def handle_interrupt(signum, frame):
        logger.info(f"Received signal {signum}, cancelling task {task_id}")
        queue.cancel(task_id)

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        # Короткие ожидания, чтобы обработчик сигнала успевал срабатывать
        while True:
            try:
                return future.result(timeout=0.2)
            except FutureTimeoutError:
                continue
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Optional[List[str]] = None) -> int:
    """Точка входа консольного скрипта."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config) if args.config else load_config_from_env()
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(level=args.log_level or config.log_level, log_file=config.log_file)

    try:
        result = run_job(config, args.worker_type, job_from_args(args))
    except TaskCancelledError:
        print(json.dumps({"success": False, "cancelled": True}))
        return 1

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
