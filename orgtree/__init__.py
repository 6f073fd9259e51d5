"""Organization hierarchy service with tenant isolation"""

__version__ = "1.0.0"
