"""
Post-action pacing, in seconds, keyed by action op.

Shared by the viewer's animation queue and by the sequential emission mode,
which uses it to estimate how long a step takes to play.
"""

from typing import Iterable, Optional

ACTION_PACING = {
    'drawTitle': 2.0,
    'drawLabel': 1.5,
    'drawMathLabel': 1.5,
    'drawCircle': 0.5,
    'drawRect': 0.5,
    'drawVector': 0.5,
    'clear': 1.0,
    'orbit': 1.0,
    'particle': 0.8,
    'wave': 0.8,
}
DEFAULT_PACING = 0.4
STEP_BOUNDARY_PAUSE = 5.0

# Ops that carry their own duration and get no extra pacing
SELF_TIMED_OPS = {'delay'}


def pacing_for(op: str) -> float:
    return ACTION_PACING.get(op, DEFAULT_PACING)


def own_duration(action) -> Optional[float]:
    """Seconds a self-timed action waits for, or None for ordinary actions."""
    if action.op not in SELF_TIMED_OPS:
        return None
    duration = getattr(action, 'duration', None)
    return float(duration) if duration else 1.0


def estimate_playback(actions: Iterable) -> float:
    """Rough seconds needed to play actions at normal speed.

    A visual's animationDuration is copied onto each of its actions, so it is
    counted once per visualGroup.
    """
    total = 0.0
    animated = set()
    for action in actions:
        own = own_duration(action)
        if own is not None:
            total += own
            continue
        total += pacing_for(action.op)
        group = getattr(action, 'visualGroup', None)
        if group is not None:
            if group in animated:
                continue
            animated.add(group)
        total += float(getattr(action, 'animationDuration', None) or 0.0)
    return total
