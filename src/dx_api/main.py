"""CLI entrypoint for dx-api."""

import logging
from collections.abc import Callable

import rich_click as click

from dx_api import __version__
from dx_api.config import debug_enabled
from dx_api.controllers import ApiCallCommand, ApiCliController
from dx_api.http.errors import DxApiError, DxConfigurationError

click.rich_click.USE_MARKDOWN = True
API_CONTROLLER = ApiCliController()


@click.group()
@click.version_option(version=__version__, prog_name="dx-api")
@click.option("--debug", is_flag=True, default=False, help="Log every retry and failure.")
def dx_api(debug: bool) -> None:
    """DNAnexus platform API CLI."""

    try:
        debug = debug or debug_enabled()
    except DxConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )


@dx_api.command("call")
@click.argument("route")
@click.argument("input_json", default="{}")
@click.option(
    "--unsafe",
    is_flag=True,
    default=False,
    help="Never retry after a transport failure; use for calls with side effects.",
)
@click.option("--raw", is_flag=True, default=False, help="Print the response body unparsed.")
def call(route: str, input_json: str, unsafe: bool, raw: bool) -> None:
    """Call an API route, for example `/system/whoami`, with a JSON input."""

    _run(
        lambda: API_CONTROLLER.call(
            ApiCallCommand(route=route, input_json=input_json, unsafe=unsafe, raw=raw),
        ),
    )


@dx_api.command("whoami")
def whoami() -> None:
    """Print the ID of the authenticated user."""

    _run(API_CONTROLLER.whoami)


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except DxApiError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    dx_api()
