"""
Lecture generation: fan-out, work queues, retry and failure handling.
"""
