from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from oncall_payroll.errors import ConfigFileError

logger = logging.getLogger("oncall_payroll.config_store")

PACKAGE_NAME = "oncall-payroll"

# CLI option name -> key in the persisted file.
OPTION_FIELDS = {
    "token": "token",
    "rate": "default_rate",
    "schedule": "default_schedule",
}


def default_config_path() -> Path:
    return Path.home() / ".config" / PACKAGE_NAME / "config.json"


class ConfigStore:
    """Defaults remembered between CLI runs."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_config_path()

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except ValueError as exc:
            raise ConfigFileError(str(self.path), "invalid JSON") from exc
        if not isinstance(data, dict):
            raise ConfigFileError(str(self.path), "expected a JSON object")
        return data

    def save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get_option(self, option: str) -> Any:
        field = OPTION_FIELDS.get(option)
        if field is None:
            return None
        return self.load().get(field)

    def update_option(self, option: str, value: Any) -> None:
        field = OPTION_FIELDS.get(option)
        if field is None:
            return
        if value is not None and not isinstance(value, (str, int, float, bool)):
            return
        data = self.load()
        data[field] = value
        self.save(data)
        logger.debug("config_option_saved", extra={"option": option, "config_path": str(self.path)})

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def clear_option(self, option: str) -> bool:
        field = OPTION_FIELDS.get(option)
        if field is None:
            return False
        data = self.load()
        data[field] = None
        self.save(data)
        return True
