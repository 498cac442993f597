"""Configuration package for wellkept.

Re-exports the constants of `config.settings` so callers may write either
`from config import SERVICE_NAME` or `from config.settings import SERVICE_NAME`.
Keep the values themselves in `settings.py`.
"""

from .settings import *  # noqa: F401,F403
from .settings import __all__  # noqa: F401
