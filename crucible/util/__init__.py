"""Helpers shared by provider collaborators."""

from .poll import poll

__all__ = ["poll"]
