"""Switchyard: command execution and operation orchestration for a coding-assistant CLI."""

__version__ = "0.1.0"

__all__ = ["__version__"]
