import os
from pathlib import Path

import yaml


# will return the root directory of the project
def _project_root() -> Path:
    # parents[1] = pdf_chat/, parents[2] = repository root
    return Path(__file__).resolve().parents[2]


def load_config(config_path: str | None = None) -> dict:
    env_path = os.getenv("CONFIG_PATH", None)

    if config_path is None:
        config_path = env_path or str(
            _project_root() / "pdf_chat" / "config" / "config.yaml"
        )

    path = Path(config_path)

    if not path.is_absolute():
        path = _project_root() / path
    if not path.exists():
        raise FileNotFoundError(f"Config file not found at {path}")
    with open(path, "r", encoding="utf-8") as file:
        return yaml.safe_load(file) or {}
