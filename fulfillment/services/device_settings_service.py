from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Protocol

VALID_THEMES = ('light', 'dark', 'system')
ANONYMOUS_NAME = 'Anonymous'


@dataclass(frozen=True)
class DeviceSettings:
    user_name: str = ''
    theme: str = 'system'
    is_authenticated: bool = False
    tag_printing_enabled: bool = False


@dataclass(frozen=True)
class SettingsUpdate:
    user_name: str | None = None
    theme: str | None = None
    is_authenticated: bool | None = None
    tag_printing_enabled: bool | None = None


class SettingsStore(Protocol):
    def load(self) -> dict | None: ...

    def save(self, values: dict) -> None: ...


class InMemorySettingsStore:
    def __init__(self, values: dict | None = None) -> None:
        self.values = dict(values) if values is not None else None

    def load(self) -> dict | None:
        return dict(self.values) if self.values is not None else None

    def save(self, values: dict) -> None:
        self.values = dict(values)


class JsonFileSettingsStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            parsed = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError):
            return None
        return parsed if isinstance(parsed, dict) else None

    def save(self, values: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(values, indent=2, sort_keys=True), encoding='utf-8')


def _validate(settings: DeviceSettings) -> DeviceSettings:
    if settings.theme not in VALID_THEMES:
        raise ValueError(f'Theme must be one of: {", ".join(VALID_THEMES)}')
    return settings


def update_settings(current: DeviceSettings, update: SettingsUpdate) -> DeviceSettings:
    changes = {f.name: getattr(update, f.name) for f in fields(update) if getattr(update, f.name) is not None}
    if 'user_name' in changes:
        changes['user_name'] = changes['user_name'].strip()
    return _validate(replace(current, **changes))


def load_settings(store: SettingsStore) -> DeviceSettings:
    stored = store.load()
    if not stored:
        return DeviceSettings()

    defaults = DeviceSettings()
    # Values whose type differs from the field default are ignored.
    values = {
        f.name: stored[f.name]
        for f in fields(DeviceSettings)
        if f.name in stored and type(stored[f.name]) is type(getattr(defaults, f.name))
    }
    try:
        return _validate(replace(defaults, **values))
    except ValueError:
        return defaults


def save_settings(store: SettingsStore, update: SettingsUpdate) -> DeviceSettings:
    updated = update_settings(load_settings(store), update)
    store.save(asdict(updated))
    return updated


def display_name(settings: DeviceSettings) -> str:
    return settings.user_name or ANONYMOUS_NAME
