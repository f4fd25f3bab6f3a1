"""Acquisition strategies: direct fetch plus browser-session Drive and Photos handlers."""
