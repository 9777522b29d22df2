"""
HTTP and WebSocket surface.
"""
