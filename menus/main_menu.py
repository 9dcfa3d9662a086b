import questionary

MAIN_MENU_CHOICES = [
    "Show now playing",
    "Authorization status",
    "Sign out (clear tokens)",
    "Spotify setup help",
    "Config Menu",
    "Exit",
]


def main_menu():
    """Ask for the next top-level action."""
    return questionary.select(
        "🎧 Spotify Now Playing — What would you like to do?",
        choices=MAIN_MENU_CHOICES,
    ).ask()
