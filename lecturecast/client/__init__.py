"""
Viewer-side playback: animation queue and narration synchronization.
"""
