from .work import WorkEntity
from .project_work import ProjectWorkEntity
from .chunk import ChunkEntity

__all__ = [
    "WorkEntity",
    "ProjectWorkEntity",
    "ChunkEntity",
]
