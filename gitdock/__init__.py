"""gitdock - ship a git repository to a Docker host behind nginx."""

__version__ = "0.3.0"
