"""Skills Hub: one central repository for AI coding-tool skills, synced into every tool."""

__version__ = "0.3.0"
