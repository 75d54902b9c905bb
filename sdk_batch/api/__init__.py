"""
HTTP API for submission and batch queue inspection.
"""
