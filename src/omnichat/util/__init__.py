import os
from pathlib import Path

from omnichat.util.logging import configure_logging
from omnichat.util.yaml import load_yaml_config

PROJECT_ROOT = Path(os.environ.get("OMNICHAT_ROOT", Path.cwd()))

__all__ = ["PROJECT_ROOT", "configure_logging", "load_yaml_config"]
