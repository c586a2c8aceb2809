"""Authoritative match-state engine for duel solitaire."""

__version__ = "0.1.0"
