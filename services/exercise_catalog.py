"""Exercise Catalog Module

Read-only catalog of frameworks and exercises, loaded from `data/catalog.json`.
The core only reads from it: lookup by id and keyword search.
"""
import json
import logging
from typing import Dict, Iterable, List, Optional
from pathlib import Path
from config.settings import CATALOG_PATH, EXERCISE_SEARCH_DEFAULT_LIMIT
from models.catalog import Exercise, Framework

logger = logging.getLogger(__name__)


class InMemoryExerciseCatalog:
    """Frameworks and exercises held in memory, keyed by id."""

    def __init__(self, frameworks: Iterable[Framework] = (), exercises: Iterable[Exercise] = ()):
        self._frameworks: Dict[str, Framework] = {f.id: f for f in frameworks}
        self._exercises: Dict[str, Exercise] = {e.id: e for e in exercises}

    @classmethod
    def from_file(cls, path: Path = CATALOG_PATH) -> "InMemoryExerciseCatalog":
        """Load frameworks and exercises from a JSON file."""
        with open(path) as f:
            data = json.load(f)

        frameworks = [Framework.from_dict(item) for item in data.get("frameworks", [])]
        exercises = [Exercise.from_dict(item) for item in data.get("exercises", [])]
        logger.info(f"Loaded catalog: {len(frameworks)} frameworks, {len(exercises)} exercises")
        return cls(frameworks, exercises)

    def get_exercise(self, exercise_id: str) -> Optional[Exercise]:
        return self._exercises.get(exercise_id)

    def get_framework(self, framework_id: str) -> Optional[Framework]:
        return self._frameworks.get(framework_id)

    def list_exercises(self) -> List[Exercise]:
        return list(self._exercises.values())

    def search(self, keywords: List[str] = None, topic: str = None,
               framework: str = None, limit: int = EXERCISE_SEARCH_DEFAULT_LIMIT) -> List[Exercise]:
        """
        Case-insensitive substring search.

        framework and topic narrow the result; keywords match when ANY keyword
        appears in the title, aspect or topic.
        """
        keywords = [k.lower() for k in (keywords or []) if k and k.strip()]
        results = []

        for exercise in self._exercises.values():
            if framework and framework.lower() not in exercise.framework.lower():
                continue
            if topic and topic.lower() not in exercise.topic.lower():
                continue
            if keywords:
                haystack = f"{exercise.title} {exercise.aspect} {exercise.topic}".lower()
                if not any(k in haystack for k in keywords):
                    continue
            results.append(exercise)
            if len(results) >= limit:
                break

        return results


# Singleton instance
_catalog = None

def get_exercise_catalog() -> InMemoryExerciseCatalog:
    """Get or create the global catalog."""
    global _catalog
    if _catalog is None:
        _catalog = InMemoryExerciseCatalog.from_file()
    return _catalog
