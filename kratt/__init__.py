"""Automated pull request worker driving git, the GitHub CLI and an AI agent."""

__version__ = "0.1.0"