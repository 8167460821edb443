"""CLI module for the form intake pipeline."""

from src.cli.forms import app as forms_app
from src.cli.main import app, main

__all__ = ["app", "forms_app", "main"]
