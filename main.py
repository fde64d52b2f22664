from __future__ import annotations
from dotenv import load_dotenv
load_dotenv()  # Load .env file before importing agent modules

import logging
import sys
import threading
import time
from typing import Callable, List, NoReturn, Optional, Sequence
import click
import uvicorn
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from hassagent import routes
from hassagent.api import APIClient
from hassagent.config import API_HOST, API_PORT, APP_NAME, APP_VERSION, LOG_FILE_NAME, LOG_LEVEL
from hassagent.errors import AgentError
from hassagent.preferences import PREF_DEVICE_ID, PREF_DEVICE_NAME, Preferences
from hassagent.registration import prompt_host_info, register, static_host_info
from hassagent.registry import SensorRegistry
from hassagent.sensors.interface import SensorProducer
from hassagent.sensors.manager import default_producers, start_producers
from hassagent.tracker import SensorTracker

logger = logging.getLogger("hassagent.main")


def configure_logging(prefs: Preferences, level: str = LOG_LEVEL) -> None:
    """Log to the console and, when it can be opened, a file next to the preferences."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    file_error: Optional[Exception] = None
    try:
        handlers.append(logging.FileHandler(prefs.storage_path(LOG_FILE_NAME), encoding="utf-8"))
    except OSError as e:
        file_error = e
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s: %(name)s: %(message)s',
        handlers=handlers,
        force=True,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    if file_error is not None:
        logger.error(f"Unable to open log file, logging to console only: {file_error}")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each status API request with its response code and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug(
            f"{request.method} {request.url.path} | "
            f"IP: {client_ip} | "
            f"Status: {response.status_code} | "
            f"Time: {process_time:.3f}s"
        )
        return response


def create_app(tracker: Optional[SensorTracker] = None) -> FastAPI:
    routes.set_tracker(tracker)
    app = FastAPI(title="hass-agent status", version=APP_VERSION)
    app.add_middleware(LoggingMiddleware)
    app.include_router(routes.router)
    return app


def start_agent(
    prefs: Preferences,
    producers: Optional[Sequence[SensorProducer]] = None,
) -> tuple[SensorTracker, threading.Event]:
    """Build the tracker from stored credentials and attach the producers."""
    creds = prefs.credentials()
    client = APIClient.from_credentials(creds)
    tracker = SensorTracker(SensorRegistry(), client)
    stop = threading.Event()
    queues = start_producers(producers if producers is not None else default_producers(), stop)
    tracker.start(*queues)
    return tracker, stop


def _fail(e: AgentError) -> NoReturn:
    logger.error(f"{e}")
    sys.exit(1)


def host_options(f: Callable) -> Callable:
    f = click.option("--tls", is_flag=True, help="Connect with https")(f)
    f = click.option("--token", help="Long-lived access token")(f)
    f = click.option("--server", help="Home Assistant host:port")(f)
    return f


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Report host sensors to Home Assistant."""
    try:
        prefs = Preferences()
    except AgentError as e:
        _fail(e)
    configure_logging(prefs)
    ctx.obj = prefs


@cli.command()
@host_options
@click.option("--no-api", is_flag=True, help="Do not serve the local status API")
@click.pass_obj
def run(prefs: Preferences, server: Optional[str], token: Optional[str], tls: bool, no_api: bool) -> None:
    """Track sensors and report them."""
    try:
        if not prefs.registered:
            provider = static_host_info(server, token, tls) if server else prompt_host_info()
            register(prefs, provider)
        prefs.validate()
        tracker, stop = start_agent(prefs)
    except AgentError as e:
        _fail(e)
    try:
        if no_api:
            while not stop.wait(1.0):
                pass
        else:
            uvicorn.run(create_app(tracker), host=API_HOST, port=API_PORT, log_level="warning")
    except KeyboardInterrupt:
        logger.debug("Ctrl-C pressed.")
    finally:
        stop.set()
        tracker.stop()
        tracker.join(timeout=5)


@cli.command("register")
@host_options
@click.option("--force", is_flag=True, help="Register again even if already registered")
@click.pass_obj
def register_cmd(prefs: Preferences, server: Optional[str], token: Optional[str], tls: bool, force: bool) -> None:
    """Register this device."""
    if server or token:
        provider = static_host_info(server, token, tls)
    else:
        provider = prompt_host_info()
    try:
        register(prefs, provider, force=force)
    except AgentError as e:
        _fail(e)
    logger.info("Device registered with Home Assistant.")


@cli.command()
@click.pass_obj
def info(prefs: Preferences) -> None:
    """Show device details."""
    parts = []
    if prefs.get(PREF_DEVICE_NAME):
        parts.append(f"Device Name {prefs.get(PREF_DEVICE_NAME)}.")
    if prefs.get(PREF_DEVICE_ID):
        parts.append(f"Device ID {prefs.get(PREF_DEVICE_ID)}.")
    parts.append("Registered." if prefs.registered else "Not registered.")
    click.echo(" ".join(parts))


@cli.command()
def version() -> None:
    """Show the agent version."""
    click.echo(f"{APP_NAME}: {APP_VERSION}")


def main() -> None:
    """Entry point."""
    cli(prog_name=APP_NAME)


if __name__ == "__main__":
    main()
