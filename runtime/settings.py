"""Runtime settings loader.

Settings come from an optional ``receiptwright.toml`` file overlaid by
``RECEIPTWRIGHT_*`` environment variables. TOML keys match the field names of
:class:`Settings`; environment variables are the upper-cased field name with the
``RECEIPTWRIGHT_`` prefix (for example ``RECEIPTWRIGHT_API_BASE_URL``).
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from receiptwright.runtime.paths import get_paths

ENV_PREFIX = "RECEIPTWRIGHT_"


@dataclass(frozen=True)
class Settings:
    """Service configuration for one process."""

    # Receipt record API
    api_base_url: str = "http://localhost:5000"
    api_key: str | None = None
    replace_items: bool = False

    # Timeouts and retry (seconds)
    short_timeout: float = 10.0
    ocr_timeout: float = 30.0
    api_timeout: float = 10.0
    normalizer_timeout: float = 60.0
    max_attempts: int = 3
    retry_base_delay: float = 0.25

    # Object store
    object_store_root: Path | None = None
    lock_container: str = "receipt-parse-locks"
    max_source_bytes: int = 50 * 1024 * 1024

    # OCR
    ocr_provider: str = "ocrspace"
    ocr_endpoint: str = "https://api.ocr.space/parse/image"
    ocr_api_key: str | None = None
    ocr_language: str = "eng"

    # External normalizer
    normalizer_endpoint: str | None = None
    normalizer_deployment: str | None = None
    normalizer_api_key: str | None = None
    normalizer_api_version: str = "2024-06-01"

    # Validation
    expected_schema_version: str = "parsed-receipt-v1"
    discount_tolerance: Decimal = Decimal("0.60")

    @property
    def objects_root(self) -> Path:
        return self.object_store_root if self.object_store_root is not None else get_paths().objects


def _coerce(field_type: Any, raw: Any) -> Any:
    if raw is None:
        return None
    type_name = field_type if isinstance(field_type, str) else getattr(field_type, "__name__", "")
    if type_name.startswith("bool"):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}
    if type_name.startswith("int"):
        return int(raw)
    if type_name.startswith("float"):
        return float(raw)
    if type_name.startswith("Decimal"):
        return Decimal(str(raw))
    if type_name.startswith("Path"):
        return Path(str(raw)).expanduser()
    return str(raw)


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_settings(config_path: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """
    Build settings from TOML and environment.

    Args:
        config_path: Optional TOML path override. If None, uses the project settings file.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        A populated Settings instance. Unknown TOML keys are ignored.
    """
    env = os.environ if environ is None else environ
    path = config_path if config_path is not None else get_paths().settings_file
    file_values = _read_toml(path)

    values: dict[str, Any] = {}
    for f in dataclasses.fields(Settings):
        raw = env.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            raw = file_values.get(f.name)
        if raw is None:
            continue
        values[f.name] = _coerce(f.type, raw)
    return Settings(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
