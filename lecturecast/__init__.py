"""
lecturecast: lecture generation pipeline and playback scheduler.
"""

__version__ = "0.1.0"
