"""
pgscope - Scoped PostgreSQL restore tool.

Replays full logical backups against less-privileged target databases,
keeping only the data the connecting role is allowed to write.
"""

__version__ = "0.3.0"
__author__ = "pgscope maintainers"
