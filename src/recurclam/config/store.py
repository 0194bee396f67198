"""Persist recurclam settings as one JSON document.

The file holds the ``scan`` (start path, depth, process limit, excluded
directories), ``scanner`` (command and recursive flag) and ``logs`` (worker
log directory) groups. CLI flags override these for a single run; ``config
set`` writes them back through ``SettingsStore.update``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from recurclam.config.models import AppSettings
from recurclam.paths import settings_path
from recurclam.runtime_logging import get_runtime_logger


class SettingsStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or settings_path()

    def load(self) -> AppSettings:
        if not self.path.exists():
            return self._write_defaults()

        raw = self.path.read_text(encoding="utf-8")
        try:
            return AppSettings.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            backup = self.path.with_suffix(".corrupt.json")
            backup.write_text(raw, encoding="utf-8")
            get_runtime_logger().warning(
                "settings.corrupt",
                path=str(self.path),
                backup=str(backup),
                error=str(exc),
            )
            return self._write_defaults()

    def save(self, settings: AppSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(settings.model_dump(mode="json"), indent=2, sort_keys=True)
        self.path.write_text(f"{payload}\n", encoding="utf-8")

    def update(self, dotted_key: str, value: Any) -> AppSettings:
        """Set ``group.field`` to ``value``, validate the whole document and save it."""
        data = self.load().model_dump()

        *groups, leaf = dotted_key.split(".")
        section: dict[str, Any] = data
        for group in groups:
            nested = section.get(group)
            if not isinstance(nested, dict):
                raise KeyError(f"Unknown setting path: {dotted_key}")
            section = nested
        if leaf not in section:
            raise KeyError(f"Unknown setting path: {dotted_key}")
        section[leaf] = value

        updated = AppSettings.model_validate(data)
        self.save(updated)
        get_runtime_logger().info("settings.updated", key=dotted_key)
        return updated

    def _write_defaults(self) -> AppSettings:
        settings = AppSettings()
        self.save(settings)
        return settings
