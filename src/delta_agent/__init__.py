"""delta-agent - text-protocol coding agent: parse model output, act inside one project."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("delta-agent")
except PackageNotFoundError:
    __version__ = "0.0.0"
