"""Application bootstrap helpers for the review scheduler."""

from .runtime import run_app
from .settings import AppSettings

__all__ = ["run_app", "AppSettings"]
