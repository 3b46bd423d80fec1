"""Zaffa: wedding zaffa booking client backed by a shared spreadsheet."""

__version__ = "0.1.0"
