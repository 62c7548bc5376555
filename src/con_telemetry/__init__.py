from importlib.metadata import version
from .telemetry_main import execute

__version__ = version("con-telemetry")


__all__ = [
    "execute",
    "__version__",
]
