"""
SDK transaction batch processor.
"""

__version__ = "0.1.0"
