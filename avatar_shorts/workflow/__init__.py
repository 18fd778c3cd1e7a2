"""
Workflow
========

Pipeline orchestration and local compositing.
"""

from .compositor import LocalCompositor
from .pipeline import (
    PipelineRequest,
    PipelineResult,
    PipelineStage,
    ShortsPipeline,
    StageRecord,
)

__all__ = [
    "LocalCompositor",
    "PipelineRequest",
    "PipelineResult",
    "PipelineStage",
    "ShortsPipeline",
    "StageRecord",
]
