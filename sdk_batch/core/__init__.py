"""
Core configuration, logging, errors and database access.
"""
