"""
Cache and session persistence.
"""
