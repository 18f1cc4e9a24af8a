"""``init``: mark the project initialized and prepare the session directory."""

from pathlib import Path
from typing import Any

import aiofiles
import structlog
import yaml

from linear_flow.config.settings import DEFAULT_CONFIG_PATH
from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.exceptions import ConfigurationError

log = structlog.get_logger(__name__)


async def _read_raw(path: Path) -> dict[str, Any]:
    """Existing config as written, without env interpolation, so ``${VAR}`` survives."""
    async with aiofiles.open(path) as f:
        content = await f.read()
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")
    return data


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    config_path = Path(ctx.param("config_path", DEFAULT_CONFIG_PATH))
    state_dir = ctx.settings.state_dir
    outcome = MutationOutcome(facts={"config_path": str(config_path), "state_dir": str(state_dir)})
    already = ctx.settings.initialized and config_path.exists()

    if already and not ctx.flag("force"):
        outcome.warnings.append("Already initialized; configuration left unchanged (use --force to rewrite)")
    else:
        data = await _read_raw(config_path) if config_path.exists() else ctx.settings.to_yaml_dict()
        workflow = data.setdefault("workflow", {})
        workflow["initialized"] = True
        for key in ("base_branch", "remote"):
            if ctx.param(key):
                workflow[key] = ctx.param(key)

        config_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(config_path, "w") as f:
            await f.write(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
        outcome.step("write_config")
        log.info("config_written", path=str(config_path))

    state_dir.mkdir(parents=True, exist_ok=True)
    outcome.step("state_directory")

    outcome.payload = {
        "config_path": str(config_path),
        "state_directory": str(state_dir),
        "already_initialized": already,
    }
    return outcome


OPERATION = Operation(
    name="init",
    mutate=_mutate,
    pre_checks=(CheckName.IS_GIT_REPOSITORY,),
    post_checks=(VerificationName.CONFIGURATION_WRITTEN, VerificationName.STATE_DIRECTORY_READY),
    requires_initialization=False,
)
