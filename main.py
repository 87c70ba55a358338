#!/usr/bin/env python3
"""Entry point for the NeonGenesis application.

Usage:
    python main.py

Or with uv:
    uv run main.py

Set NEON_GENESIS_VIEW=web to open the interface in a browser tab instead of
a desktop window. The Gemini API key is read from GEMINI_API_KEY (a .env
file in the working directory is honoured).
"""

import logging

import flet as ft

from neongenesis.config import load_config
from neongenesis.fletui import main


def run() -> None:
    """Configure logging and launch the Flet application."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    view = ft.AppView.WEB_BROWSER if config.view == "web" else ft.AppView.FLET_APP
    ft.app(
        target=lambda page: main(page, config),
        view=view,
        upload_dir=config.upload_dir,
    )


if __name__ == "__main__":
    run()
