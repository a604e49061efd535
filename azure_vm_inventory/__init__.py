"""Inventory Azure virtual machines into one flat row per machine."""

__version__ = "0.1.0"
