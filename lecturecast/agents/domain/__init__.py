"""
Domain models for generation work.
"""
