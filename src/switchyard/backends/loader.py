"""Backend definition loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from pydantic import ValidationError

from ..errors import BackendConfigError
from .models import DEFAULT_BACKENDS, BackendConfig


YAML_PATTERNS = ("*.yml", "*.yaml")


class BackendConfigLoader:
    """Reads backend definitions from YAML files.

    A file holds one mapping or a list of mappings. Definitions sharing an id
    are merged field by field, later files winning, so an override file only
    needs the keys it changes.
    """

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        self._search_paths = [Path(path) for path in (search_paths or []) if Path(path).exists()]
        self._sources: dict[str, Path] = {}

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    @property
    def sources(self) -> dict[str, Path]:
        """File that last contributed to each backend id, from the latest load."""

        return dict(self._sources)

    def definition_files(self) -> list[Path]:
        files: list[Path] = []
        for base in self._search_paths:
            for pattern in YAML_PATTERNS:
                files.extend(sorted(base.glob(pattern)))
        return files

    def load_raw(self) -> dict[str, dict[str, Any]]:
        """Return merged, unvalidated mappings keyed by backend id."""

        merged: dict[str, dict[str, Any]] = {}
        errors: list[str] = []
        self._sources = {}

        for path in self.definition_files():
            try:
                entries = _read_entries(path)
            except BackendConfigError as exc:
                errors.append(str(exc))
                continue
            for entry in entries:
                backend_id = entry.get("id")
                if not isinstance(backend_id, str) or not backend_id:
                    errors.append(f"Backend definition without an id in {path}")
                    continue
                merged.setdefault(backend_id, {}).update(entry)
                self._sources[backend_id] = path

        if errors:
            raise BackendConfigError("; ".join(errors))
        return merged

    def load_all(self, base: Mapping[str, BackendConfig] | None = None) -> dict[str, BackendConfig]:
        """Validate the YAML definitions, each laid over ``base`` when it has the same id."""

        configs: dict[str, BackendConfig] = {}
        errors: list[str] = []
        for backend_id, fields in self.load_raw().items():
            seed = base[backend_id].model_dump() if base and backend_id in base else {}
            try:
                configs[backend_id] = BackendConfig.model_validate({**seed, **fields})
            except ValidationError as exc:
                errors.append(f"Backend '{backend_id}' in {self._sources[backend_id]}: {exc}")
        if errors:
            raise BackendConfigError("; ".join(errors))
        return configs


def _read_entries(path: Path) -> list[dict[str, Any]]:
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise BackendConfigError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        return []
    entries = document if isinstance(document, list) else [document]
    for entry in entries:
        if not isinstance(entry, dict):
            raise BackendConfigError(f"Expected a mapping in {path}, got {type(entry).__name__}")
    return entries


def load_backend_configs(search_paths: Iterable[Path] | None = None) -> dict[str, BackendConfig]:
    """Return the built-in backends overlaid with any YAML definitions found."""

    configs = {config.id: config for config in DEFAULT_BACKENDS}
    configs.update(BackendConfigLoader(search_paths).load_all(configs))
    return configs


__all__ = ["BackendConfigLoader", "load_backend_configs"]
