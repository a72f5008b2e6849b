"""zproxy - OpenAI-compatible API server backed by the z.ai chat upstream."""

from ._version import __version__


__all__ = ["__version__"]
