# src/pyairtouch5/__main__.py
from typing import Optional

import typer
import uvicorn

from . import cli
from .config import settings

app = typer.Typer(
    name="pyairtouch5",
    help="Monitor and control AirTouch 5 controllers from the shell, over HTTP or via MQTT.",
    add_completion=False,
    no_args_is_help=True,
)
app.add_typer(cli.app, name="cli")


def describe_setup(host: str, port: int) -> list[str]:
    """Startup summary shown before uvicorn takes over the console."""
    lines = [f"pyairtouch5 API listening on http://{host}:{port}"]
    if settings.AT5_CONTROLLERS:
        lines.append(f"Static controllers: {', '.join(settings.AT5_CONTROLLERS)}")
    else:
        lines.append(f"Discovering controllers on UDP port {settings.AT5_DISCOVERY_PORT}")
    if settings.MQTT_ENABLED:
        lines.append(
            f"MQTT: {settings.MQTT_HOST}:{settings.MQTT_PORT}, topics under "
            f"'{settings.MQTT_TOPIC_PREFIX}/'"
        )
    return lines


@app.command("api")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default API_HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default API_PORT)."),
):
    """Serve the HTTP API; the MQTT bridge runs alongside when enabled."""
    host = host or settings.API_HOST
    port = port or settings.API_PORT
    for line in describe_setup(host, port):
        typer.echo(line)
    uvicorn.run("pyairtouch5.api:app", host=host, port=port)


if __name__ == "__main__":
    app()
