"""
Compat Module - Legacy-compatible response layer.
=================================================

- synthesizer: Snapshot-first, derive-on-miss responses in legacy shapes
- errors: Level / subject / topic not-found taxonomy
"""

from notebot_bridge.compat.errors import (
    NotFoundError,
    LevelNotFound,
    SubjectNotFound,
    TopicNotFound,
)
from notebot_bridge.compat.synthesizer import CompatResponse, CompatSynthesizer

__all__ = [
    "NotFoundError",
    "LevelNotFound",
    "SubjectNotFound",
    "TopicNotFound",
    "CompatResponse",
    "CompatSynthesizer",
]
