"""
Model-backed implementations of the generation collaborators.
"""
