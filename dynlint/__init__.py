"""dynlint package."""

from .api import CheckResult, check, list_libraries, provision
from .core.context import Context
from .core.options import Options
from .core.version import __version__

__all__ = [
    "CheckResult",
    "Context",
    "Options",
    "check",
    "list_libraries",
    "provision",
    "__version__",
]
