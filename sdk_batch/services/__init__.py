"""
Business logic services.
"""
