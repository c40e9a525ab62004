"""Configuration package for the Commons API client."""

from . import commons_settings

__all__ = ["commons_settings"]
