"""Shared CLI helpers for context management and service creation."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import click

from ..exceptions import FinanzaProError

if TYPE_CHECKING:
    from click import Context

    from ..services import DataManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


def configure_logging(level: str) -> None:
    """Configure root logging for the CLI process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def build_data_manager(ctx: Context) -> tuple[DataManager, Any]:
    """Create the data manager for the selected mode.

    Args:
        ctx: Click context with config, mock and offline flags.

    Returns:
        Tuple of (DataManager, remote client).
    """
    from ..clients import MockRemoteClient, RestRemoteClient
    from ..db.database import Database
    from ..exceptions import ConfigError
    from ..services import DataManager

    cfg = ctx.obj["config"]
    mock = ctx.obj.get("mock", False)
    offline = ctx.obj.get("offline", False)

    # Use separate database for mock mode
    if mock:
        db = Database(cfg.mock_db_path)
        remote = MockRemoteClient(
            user_id=cfg.remote.user_id or "mock-user",
            data_path=cfg.mock_remote_path,
        )
    else:
        if not offline and not cfg.remote.is_configured:
            raise ConfigError(
                "Remote not configured: set FINANZAPRO_REMOTE_URL and FINANZAPRO_API_KEY "
                "(or use --mock / --offline)"
            )
        db = Database(cfg.db_path)
        remote = RestRemoteClient(cfg.remote)

    manager = DataManager(db, remote, cfg.sync, online=not offline)
    return manager, remote


def run_with_manager(
    ctx: Context,
    action: Callable[[DataManager], Awaitable[T]],
    bootstrap: bool = False,
) -> T:
    """Run an async action against a fresh data manager.

    Any drain scheduled by the action is flushed before the event loop
    closes, so local changes reach the remote when online.

    Args:
        ctx: Click context.
        action: Coroutine function receiving the manager.
        bootstrap: Run the full session bootstrap instead of just resuming.

    Returns:
        Whatever the action returns.
    """

    async def runner() -> T:
        manager, remote = build_data_manager(ctx)
        try:
            user_id = ctx.obj.get("user_id")
            if bootstrap:
                ctx.obj["pull_results"] = await manager.initialize(user_id)
            else:
                manager.resume(user_id)
            result = await action(manager)
            if manager.engine.has_scheduled_drain:
                drain = await manager.sync()
                if drain.failed:
                    logger.warning("%d changes could not be synced yet", drain.failed)
            await manager.engine.wait_scheduled()
            return result
        finally:
            close = getattr(remote, "close", None)
            if close is not None:
                await close()
            manager.close()

    try:
        return asyncio.run(runner())
    except FinanzaProError as e:
        raise click.ClickException(str(e)) from e
