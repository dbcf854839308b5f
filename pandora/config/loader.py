import logging
from pathlib import Path

from pyaml_env import parse_config as parse_config_with_env

from pandora.config.pandora import PandoraConfig

logger = logging.getLogger(__name__)


def load_config(config_path: str | Path) -> PandoraConfig:
    """Read a YAML config file, expanding ``!ENV ${VAR}`` references."""
    with open(config_path, 'r', encoding='utf-8') as f:
        raw = parse_config_with_env(data=f, tag=None)
    config = PandoraConfig.model_validate(raw or {})
    logger.debug(f"Loaded config: {config}")
    return config
