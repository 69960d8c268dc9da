"""Screen capture package.

This package contains modules for frame sources, the periodic capture loop,
the directory-backed artifact store, and the Flask server that lists and
streams captured images.
"""

# Nothing to export at package import time; modules provide the functionality.
__all__ = []
