"""Return matrix container and loaders."""

from .loader import load_returns_csv
from .returns import ReturnMatrix

__all__ = ["ReturnMatrix", "load_returns_csv"]
