"""
Console entry point for the askLunar reading client.

Run with ``python -m asklunar.main``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys

from asklunar.config import Configuration
from asklunar.history.repositories.sql_repo import AsyncSqlRepo
from asklunar.logging_utils import (
    ReadingErrorHandler,
    configure_logging,
    log_operation,
)
from asklunar.pacing import TextStreamGenerator
from asklunar.reading import (
    ReadingError,
    ReadingParameters,
    ReadingService,
    ReadingState,
)
from asklunar.reading.streaming import Channel, DeltaKind, DeltaStream


def create_repository(config: Configuration) -> AsyncSqlRepo:
    """Create repository instance based on configuration."""
    repo_config = config.get_repository_config()
    db_path = repo_config.get("path", "readings.db")
    persistence_config = repo_config["persistence"]

    logging.info(f"Using AsyncSqlRepo with database path: {db_path}")
    logging.info(f"Persistence enabled: {persistence_config['enabled']}")
    return AsyncSqlRepo(db_path, persistence_config)


async def print_channel(stream: DeltaStream) -> str:
    """Print deltas for one channel as they arrive and return the final text."""
    text = ""
    label = stream.channel.value
    async for delta in stream:
        text = delta.apply(text)
        if delta.kind is DeltaKind.APPEND:
            print(delta.text, end="", flush=True)
        elif delta.kind is DeltaKind.REPLACE:
            print(f"\n[{label}] {delta.text}", flush=True)
        else:
            print(f"\n[{label}] ", end="", flush=True)
    return text


@log_operation("replay_latest")
async def replay_latest(repo: AsyncSqlRepo, display_config: dict) -> None:
    """Replay the most recent saved reading at streaming pace."""
    readings = await repo.fetch_readings(limit=1)
    if not readings:
        logging.info("No saved readings to replay")
        return

    latest = readings[0]
    print(f"\n--- Last reading: {latest.card_name} "
          f"({latest.timestamp:%Y-%m-%d %H:%M}) ---")
    generator = TextStreamGenerator(
        latest.interpretation,
        chunk_size=display_config.get("replay_chunk_size", 3),
        interval=display_config.get("replay_interval", 0.05),
    )
    async for chunk in generator.stream():
        print(chunk, end="", flush=True)
    print()


async def main() -> None:
    """Main entry point - one reading on the console with graceful shutdown."""
    config = Configuration()
    configure_logging(config.get_logging_config())

    stream_config = config.get_stream_config()
    parameters = ReadingParameters.from_config(config.get_reading_config())
    display_config = config.get_display_config()

    errors: list[ReadingError] = []

    def on_error(error: ReadingError) -> None:
        errors.append(error)
        print(f"\n! {ReadingErrorHandler.describe_error(error)}", file=sys.stderr)

    def on_completed() -> None:
        print("\n--- Reading complete ---")

    async with create_repository(config) as repo:
        if display_config.get("replay_latest", False):
            await replay_latest(repo, display_config)

        async with ReadingService(
            stream_config,
            config.auth_token,
            on_completed=on_completed,
            on_error=on_error,
            repository=repo,
        ) as service:
            session = service.start_reading(parameters)

            def signal_handler() -> None:
                """Handle shutdown signals gracefully."""
                logging.info("Received shutdown signal, cancelling reading...")
                service.cancel_reading()

            # Register signal handlers for graceful shutdown
            if sys.platform != "win32":
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGTERM, signal.SIGINT):
                    loop.add_signal_handler(sig, signal_handler)

            consumers = [
                asyncio.create_task(print_channel(service.channels[channel]))
                for channel in Channel
            ]

            try:
                with contextlib.suppress(asyncio.CancelledError):
                    await session
                await asyncio.gather(*consumers)
            except KeyboardInterrupt:
                logging.info("Keyboard interrupt received, shutting down...")
            finally:
                for task in consumers:
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
                logging.info(
                    f"Reading finished in state {service.state.value}: "
                    f"{service.get_statistics()}"
                )

    if errors and service.state is not ReadingState.COMPLETED:
        sys.exit(1)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
