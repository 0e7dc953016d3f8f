"""Plugin system CLI.

Command-line interface for managing installed plugins.
"""

__version__ = "0.1.0"
