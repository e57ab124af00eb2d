"""
govm - Go toolchain version and module-cache manager.

Installs side-by-side Go releases, switches the current one, manages the Go
module cache and diagnoses the resulting environment.
"""

__version__ = "1.0.0"
