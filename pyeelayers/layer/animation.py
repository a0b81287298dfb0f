"""Animation clock for filmstrip layers.

The active frame is a pure function of wall-clock time: one loop over all
frames takes frame_count / speed seconds, and the frame shown is the position
inside the current loop. There is no timer; the clock is sampled whenever the
layer updates or the rendering engine asks for a tick.
"""
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_ANIMATION_SPEED = 12


@dataclass
class AnimationState:
    frame_count: Optional[int] = None
    frame: Optional[int] = None

    def reset(self) -> None:
        self.frame_count = None
        self.frame = None


def tick(now: float, frame_count: Optional[int], speed: float) -> Optional[int]:
    """
    Compute the active frame index at time `now`.

    Args:
        now: Time in seconds (e.g. time.time())
        frame_count: Number of frames in the loop
        speed: Playback speed in frames per second

    Returns:
        Frame index in [0, frame_count - 1], or None when there is nothing to animate

    Example:
        >>> tick(now=0.5, frame_count=12, speed=12)
        6
    """
    if not frame_count or speed <= 0:
        return None

    loop_time = frame_count / speed
    phase = (now % loop_time) / loop_time
    return min(int(math.floor(phase * frame_count)), frame_count - 1)


class AnimationClock:
    """Applies `tick` to an AnimationState using a configurable time source."""

    def __init__(self, speed: float = DEFAULT_ANIMATION_SPEED,
                 time_source: Callable[[], float] = time.time) -> None:
        self.speed = speed
        self.time_source = time_source

    def update(self, state: AnimationState) -> Optional[int]:
        """Advance `state.frame`; keeps the previous frame when there is nothing to animate."""
        frame = tick(self.time_source(), state.frame_count, self.speed)
        if frame is not None:
            state.frame = frame
        return state.frame
