"""Presence-triggered connect string bot for Mumble."""

from .cli import app

__all__ = ["app"]
