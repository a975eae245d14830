# device_agent/cli/cli.py
import json
import logging
import signal

import click

from device_agent.core.cancellation import CancellationToken
from device_agent.core.config import load_config
from device_agent.core.errors import ConfigurationError
from device_agent.core.orchestrator import GUIAgent
from device_agent.core.registry import register_builtin_operators, registry
from device_agent.tools.adb.adb_tool import get_android_device_ids
from device_agent.utils.logger import setup_logging


def _choose_device(adb_path: str = "adb") -> str:
    ids = get_android_device_ids(adb_path)
    if not ids:
        raise ConfigurationError("No available Android devices found")
    if len(ids) == 1:
        return ids[0]
    return click.prompt("Select a device", type=click.Choice(ids), default=ids[0])


@click.group()
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
def cli(verbose):
    setup_logging(logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.argument("instruction")
@click.option("--operator", default=None, help="Operator to drive (desktop|adb)")
@click.option("--device-id", default=None, help="adb serial of the target device")
@click.option("--max-loop", "max_loop_count", type=int, default=None, help="Maximum number of rounds")
@click.option("--config", "config_path", default=None, help="Path to agent YAML config")
@click.option("--model", default=None, help="Model name on the VLM endpoint")
@click.option("--base-url", default=None, help="OpenAI-compatible VLM endpoint")
@click.option("--language", default=None, help="Language of the model's thoughts (en|zh)")
@click.option("--plan/--no-plan", "plan_before_run", default=None, help="Plan steps before the first round")
def run(instruction, operator, device_id, max_loop_count, config_path, model, base_url, language, plan_before_run):
    overrides = {
        "operator": operator,
        "device_id": device_id,
        "max_loop_count": max_loop_count,
        "language": language,
        "plan_before_run": plan_before_run,
        "model": {k: v for k, v in {"model": model, "base_url": base_url}.items() if v is not None},
    }
    cfg = load_config(config_path, overrides)

    token = CancellationToken()
    try:
        if cfg.operator == "adb" and not cfg.device_id:
            cfg = cfg.model_copy(update={"device_id": _choose_device()})
        agent = GUIAgent.from_config(
            cfg,
            cancellation=token,
            on_error=lambda e: click.echo(f"error: {e}", err=True),
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    # Ctrl-C cancels the run; the loop stops at its next check
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    try:
        state = agent.run(instruction)
    finally:
        signal.signal(signal.SIGINT, previous)

    click.echo(json.dumps(state.model_dump(mode="json"), indent=2))


@cli.command()
def operators():
    """List registered operators and their action spaces."""
    register_builtin_operators()
    click.echo(json.dumps(registry.list_contracts(), indent=2, default=str))


if __name__ == "__main__":
    cli()
