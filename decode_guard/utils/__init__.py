"""
Utility functions and helpers.

Components:
    - logging: Logging configuration for the decode_guard logger hierarchy

Example:
    ```python
    from decode_guard.utils import configure_logging

    configure_logging(level="debug", formatter="detailed")
    ```
"""

from decode_guard.utils.logging import configure_logging

__all__ = ["configure_logging"]
