import json
import sys
from config import create_default_config, load_config, validate_config
from utils.logger import setup_logging, log_info, log_error, log_warning
from menus.main_menu import main_menu
from menus.now_playing_menu import authorization_status, now_playing, setup_help, sign_out
from menus.config_menu import config_menu


def run(config: dict) -> None:
    while True:
        choice = main_menu()

        if choice == "Show now playing":
            now_playing(config)

        elif choice == "Authorization status":
            authorization_status(config)

        elif choice == "Sign out (clear tokens)":
            sign_out(config)

        elif choice == "Spotify setup help":
            setup_help(config)

        elif choice == "Config Menu":
            config = config_menu(config)

        elif choice == "Exit" or choice is None:
            log_info("Exiting program...")
            break

        else:
            log_error("Invalid choice.")


if __name__ == "__main__":
    setup_logging(log_file=None)

    try:
        config = load_config()
    except FileNotFoundError:
        config = create_default_config()
        log_warning("config.json not found; created one with default settings.")
        log_warning("Set spotify_client_id (Config Menu or config.json) before authorizing.")
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        sys.exit(1)
    except Exception as e:
        log_error(f"Error loading config: {e}")
        sys.exit(1)

    setup_logging(log_file=config.get("log_file"), level=config.get("log_level", "INFO"))

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_error(error)
        sys.exit(1)

    run(config)
