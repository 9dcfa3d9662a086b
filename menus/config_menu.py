import questionary
from config import (
    load_config, validate_config, update_config, reset_to_defaults,
    CONFIG_SCHEMA
)
from utils.logger import log_error, log_success


def config_menu(config: dict) -> dict:
    """
    Display the configuration menu and handle user selections.
    Returns the potentially updated config dict.
    """
    while True:
        choice = questionary.select(
            "⚙️ Config Menu — What would you like to do?",
            choices=[
                "View current config",
                "Update a setting",
                "Reset to defaults",
                "Validate configuration",
                "Back"
            ]
        ).ask()

        if choice == "View current config":
            view_config(config)

        elif choice == "Update a setting":
            config = update_setting_menu(config)

        elif choice == "Reset to defaults":
            config = reset_config_menu(config)

        elif choice == "Validate configuration":
            validate_config_menu(config)

        else:
            break

    return config


def view_config(config: dict):
    """Display the current configuration in a readable format."""
    print("\n" + "=" * 50)
    print("📋 Current Configuration")
    print("=" * 50)

    categories = {
        "Spotify": ["spotify_client_id", "spotify_redirect_uri", "spotify_scopes"],
        "Tokens & Network": ["spotify_token_cache_path", "spotify_callback_timeout", "spotify_http_timeout"],
        "Polling": ["poll_retry_delay_ms", "poll_end_padding_ms"],
        "Logging": ["log_file", "log_level"],
    }

    for category, keys in categories.items():
        print(f"\n{category}:")
        for key in keys:
            if key in config:
                value = config[key]
                if isinstance(value, list):
                    value = " ".join(str(v) for v in value)
                print(f"  {key}: {value if value != '' else '(not set)'}")

    print("\n" + "=" * 50)
    input("\nPress Enter to continue...")


def parse_setting_value(key: str, raw: str):
    """Convert text typed by the user into the type CONFIG_SCHEMA expects for ``key``."""
    schema = CONFIG_SCHEMA.get(key, {})
    expected = schema.get("type")
    raw = (raw or "").strip()

    if expected == list:
        return [part for part in raw.replace(",", " ").split() if part]
    if expected == int:
        return int(raw)
    if expected == (int, float):
        number = float(raw)
        return int(number) if number.is_integer() else number
    return raw


def update_setting_menu(config: dict) -> dict:
    """Menu to update individual settings."""
    editable_keys = list(CONFIG_SCHEMA.keys())
    editable_keys.append("Back")

    key = questionary.select(
        "Select setting to update:",
        choices=editable_keys
    ).ask()

    if key in (None, "Back"):
        return config

    schema = CONFIG_SCHEMA.get(key, {})
    current_value = config.get(key, "Not set")

    print(f"\nCurrent value: {current_value}")

    if "choices" in schema:
        new_value = questionary.select(
            f"Select new value for {key}:",
            choices=schema["choices"]
        ).ask()

    else:
        if isinstance(current_value, list):
            default = " ".join(str(v) for v in current_value)
            hint = " (space separated)"
        else:
            default = str(current_value) if current_value != "Not set" else ""
            hint = ""
            if "min" in schema or "max" in schema:
                hint = f" ({schema.get('min', 0)}-{schema.get('max', 9999)})"

        new_value_str = questionary.text(
            f"Enter new value for {key}{hint}:",
            default=default
        ).ask()

        try:
            new_value = parse_setting_value(key, new_value_str)
        except ValueError:
            log_error("Invalid number format")
            return config

    success, message = update_config(key, new_value)

    if success:
        log_success(message)
        config[key] = new_value
    else:
        log_error(message)

    return config


def reset_config_menu(config: dict) -> dict:
    """Menu to reset configuration to defaults."""
    confirm = questionary.confirm(
        "⚠️ Reset all settings to defaults? Your Spotify client id is kept.",
        default=False
    ).ask()

    if confirm:
        success, message = reset_to_defaults()

        if success:
            log_success(message)
            config = load_config()
        else:
            log_error(message)

    return config


def validate_config_menu(config: dict):
    """Validate the current configuration and show any errors."""
    is_valid, errors = validate_config(config)

    print("\n" + "=" * 50)
    print("🔍 Configuration Validation")
    print("=" * 50)

    if is_valid:
        log_success("Configuration is valid! ✓")
    else:
        log_error("Configuration has errors:")
        for error in errors:
            print(f"  ✗ {error}")

    print("=" * 50)
    input("\nPress Enter to continue...")
