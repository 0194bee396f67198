"""Settings schema for recurclam."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from recurclam.paths import DEFAULT_WORKER_LOG_DIR


class ScanSettings(BaseModel):
    start_path: str = Field(default="/", description="Directory discovery starts from")
    depth: int = Field(default=2, ge=0, description="Discovery depth below the start path")
    process_limit: int = Field(default=4, ge=1, description="Maximum concurrent scanner processes")
    exclude_dirs: list[str] = Field(default_factory=lambda: ["/dev", "/proc", "/sys"])

    @field_validator("start_path")
    @classmethod
    def validate_start_path(cls, value: str) -> str:
        return str(Path(value).expanduser())


class ScannerSettings(BaseModel):
    command: str = Field(default="clamscan", description="Scanner program and leading arguments")
    recursive_flag: str = Field(default="--recursive=yes")

    @field_validator("command")
    @classmethod
    def validate_command(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("scanner command must not be empty")
        return value


class LogSettings(BaseModel):
    worker_log_dir: str = Field(default=str(DEFAULT_WORKER_LOG_DIR))


class AppSettings(BaseModel):
    schema_version: int = Field(default=1)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    logs: LogSettings = Field(default_factory=LogSettings)

    def setting_items(self) -> list[tuple[str, str]]:
        """Flatten key/value pairs for display."""

        result: list[tuple[str, str]] = []

        def walk(prefix: str, value: object) -> None:
            if isinstance(value, BaseModel):
                for key, nested in value.model_dump().items():
                    walk(f"{prefix}.{key}" if prefix else key, nested)
            elif isinstance(value, dict):
                for key, nested in value.items():
                    walk(f"{prefix}.{key}" if prefix else key, nested)
            else:
                result.append((prefix, str(value)))

        walk("", self)
        return result
