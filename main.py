"""AnimeMatcher Main Application."""

import asyncio
import signal
import sys

import uvicorn
from pydantic import ValidationError

from src import ANIMEMATCHER_HEADER, log
from src.config.settings import get_config
from src.core.sched import JobScheduler
from src.exceptions import AnimeMatcherError
from src.web.app import create_app


def _setup_signal_handlers_for_scheduler(scheduler: JobScheduler) -> None:
    """Install SIGINT/SIGTERM handlers that request scheduler shutdown."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.get_event_loop()

    def _on_signal(sig):
        name = signal.Signals(sig).name if sig else "UNKNOWN"
        log.info(f"AnimeMatcher: Received {name} signal, initiating graceful shutdown")
        scheduler.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(s))
        except NotImplementedError:
            # Fallback for environments that don't support add_signal_handler
            signal.signal(sig, lambda s, f: _on_signal(s))


def validate_configuration() -> bool:
    """Load the configuration and log what the matcher will run with.

    Returns:
        bool: True if configuration is valid, False otherwise
    """
    try:
        config = get_config()
    except ValidationError as e:
        log.error(f"AnimeMatcher: Configuration validation failed: {e}")
        return False
    except (OSError, ValueError) as e:
        log.error(f"AnimeMatcher: Configuration error: {e}")
        return False

    log.info(f"AnimeMatcher: Configuration: {config!s}")
    configured = [
        str(provider)
        for provider, provider_config in config.providers.items()
        if provider_config.api_key is not None
    ]
    if configured:
        log.info(
            f"AnimeMatcher: LLM providers with an api_key: {', '.join(configured)}"
        )
    else:
        log.warning("AnimeMatcher: No LLM provider api_key configured, jobs will fail")
    if config.tmdb.api_key is None:
        log.warning("AnimeMatcher: No TMDB api_key configured, TMDB jobs will fail")
    return True


async def run() -> int:
    """Main application entry point.

    Initializes the job scheduler and serves the API until shutdown.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    scheduler: JobScheduler | None = None
    server_task: asyncio.Task | None = None

    ret = 0
    try:
        log.info("\n" + ANIMEMATCHER_HEADER)

        if not validate_configuration():
            return 1
        config = get_config()

        scheduler = JobScheduler()
        await scheduler.initialize()
        await scheduler.start()

        _setup_signal_handlers_for_scheduler(scheduler)

        app = create_app(scheduler)
        uv_config = uvicorn.Config(
            app,
            host=config.web.host,
            port=config.web.port,
            log_config=None,
            loop="asyncio",
            proxy_headers=True,
            forwarded_allow_ips="*",
        )

        server = uvicorn.Server(uv_config)
        # Use `_serve()` so uvicorn doesn't install its own signal handlers
        server_task = asyncio.create_task(server._serve())

        log.success(
            "AnimeMatcher: API started at "
            f"\033[92mhttp://{config.web.host}:{config.web.port} "
            "(ctrl+c to stop)\033[0m"
        )

        await scheduler.wait_for_completion()

        # Signal uvicorn server to stop and wait for it
        server.should_exit = True
        await server_task
    except KeyboardInterrupt:
        log.info("AnimeMatcher: Keyboard interrupt received, shutting down")
    except AnimeMatcherError as e:
        log.error(f"AnimeMatcher: {e}")
        return 1
    except (OSError, PermissionError) as e:
        log.error(f"AnimeMatcher: File system error: {e}")
        return 1
    except asyncio.CancelledError:
        log.info("AnimeMatcher: Application cancelled")
        return 0
    except Exception as e:
        log.error(f"AnimeMatcher: Unexpected application error: {e}", exc_info=True)
        return 1
    finally:
        if scheduler:
            log.info("AnimeMatcher: Shutting down application")
            try:
                await scheduler.stop()
                log.success("AnimeMatcher: Application shutdown complete")
            except asyncio.CancelledError:
                log.info("AnimeMatcher: Shutdown cancelled")
                ret = 1
            except Exception as e:
                log.error(f"AnimeMatcher: Error during shutdown: {e}", exc_info=True)
                ret = 1
    return ret


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Initializes the application and runs the main event loop.

    Args:
        argv (list[str] | None): Command-line arguments (unused).

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        log.info("AnimeMatcher: Application interrupted")
        return 0
    except Exception as e:
        log.error(f"AnimeMatcher: Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
