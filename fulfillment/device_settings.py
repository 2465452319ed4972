from __future__ import annotations

import argparse

from fulfillment.config import settings
from fulfillment.services.device_settings_service import (
    VALID_THEMES,
    JsonFileSettingsStore,
    SettingsUpdate,
    display_name,
    load_settings,
    save_settings,
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Show or change the settings stored on this device.')
    parser.add_argument('--name', dest='user_name', help='Name recorded on picks and repairs run from this device.')
    parser.add_argument('--theme', choices=VALID_THEMES)
    parser.add_argument('--tag-printing', dest='tag_printing_enabled', action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument('--path', default=settings.device_settings_path, help='Settings file location.')
    args = parser.parse_args(argv)

    store = JsonFileSettingsStore(args.path)
    update = SettingsUpdate(
        user_name=args.user_name,
        theme=args.theme,
        tag_printing_enabled=args.tag_printing_enabled,
    )
    if update == SettingsUpdate():
        current = load_settings(store)
    else:
        current = save_settings(store, update)

    print(f'Name: {display_name(current)}')
    print(f'Theme: {current.theme}')
    print(f'Tag printing: {"enabled" if current.tag_printing_enabled else "disabled"}')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
