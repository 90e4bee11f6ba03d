"""
Background jobs for time inference.
"""
