"""Core services: Hydrating repository, write path and the engine that wires them."""

from paperindex.core.engine import PaperIndexEngine
from paperindex.core.repository import PaperSearchRepository
from paperindex.core.service import PaperService

__all__ = ["PaperIndexEngine", "PaperSearchRepository", "PaperService"]
