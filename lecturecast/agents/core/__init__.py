"""
Core interfaces and contracts for the agents system.
"""

from lecturecast.agents.core.interfaces import (
    GenerationCollaborators,
    IChunkValidator,
    INarrationGenerator,
    INotesGenerator,
    IPlanGenerator,
    IVisualGenerator,
    VisualDescriptor,
)

__all__ = [
    "GenerationCollaborators",
    "IChunkValidator",
    "INarrationGenerator",
    "INotesGenerator",
    "IPlanGenerator",
    "IVisualGenerator",
    "VisualDescriptor",
]
