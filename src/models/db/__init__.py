"""Models for AnimeMatcher database tables."""

from src.models.db.anime import Anime, Mapping
from src.models.db.base import Base
from src.models.db.job import Job

__all__ = ["Anime", "Base", "Job", "Mapping"]
