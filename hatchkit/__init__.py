"""Hatch new projects from templates."""

__version__ = "0.4.2"
