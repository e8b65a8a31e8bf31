"""
Common utilities shared by the solver modules.

**Logging and Monitoring:**
- Console/file logger with verbosity control and indentation levels
- Process-wide global logger

Example:
    >>> from spdkrylov.common import get_global_logger
    >>> log = get_global_logger()
    >>> log.info("Starting the solve.")
"""

from .flog import Logger, Colors, get_global_logger

__all__ = ["Logger", "Colors", "get_global_logger"]
