"""Askbox: anonymous questions and reaction voting for Slack."""

__version__ = "1.0.0"
