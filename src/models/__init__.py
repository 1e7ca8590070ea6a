"""Models Initialization Module."""

from src.models.db import Anime, Base, Job, Mapping

__all__ = ["Anime", "Base", "Job", "Mapping"]
