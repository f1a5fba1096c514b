"""Shared schema exports."""

from .account import PublicAccount

__all__ = ["PublicAccount"]
