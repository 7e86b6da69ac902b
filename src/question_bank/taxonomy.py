"""
Label taxonomy persistence: the subject, level and question-title lists
offered as filters and form choices.

Each list falls back to a fixed seed list when it has never been saved
or the stored value is malformed. Any malformed data results in
graceful fallback to defaults, never an exception.
"""
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from question_bank.paths import get_taxonomy_path

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_TITLES = [
    "Algebra Basics",
    "Calculus Fundamentals",
    "Geometry Problems",
    "Linear Equations",
    "Matrices and Determinants",
    "Number Theory",
    "Probability",
    "Statistics",
    "Trigonometry",
    "Vector Analysis",
]

DEFAULT_SUBJECTS = [
    "Mathematics",
    "Physics",
    "Chemistry",
    "Biology",
    "Computer Science",
]

DEFAULT_LEVELS = [
    "HL",
    "SL",
]


class TaxonomyKind(Enum):
    """Stored list names (also the JSON keys)."""

    SUBJECTS = "subjects"
    LEVELS = "levels"
    QUESTION_TITLES = "question_titles"

    @classmethod
    def from_name(cls, name: str) -> "TaxonomyKind":
        """Accept CLI-friendly names: subjects, levels, titles."""
        aliases = {"subjects": cls.SUBJECTS, "levels": cls.LEVELS, "titles": cls.QUESTION_TITLES}
        key = name.strip().lower()
        if key in aliases:
            return aliases[key]
        for kind in cls:
            if kind.value.lower() == key:
                return kind
        raise ValueError(f"Unknown taxonomy: {name!r}")

    @property
    def defaults(self) -> List[str]:
        return list(_DEFAULTS[self])


_DEFAULTS: Dict[TaxonomyKind, List[str]] = {
    TaxonomyKind.SUBJECTS: DEFAULT_SUBJECTS,
    TaxonomyKind.LEVELS: DEFAULT_LEVELS,
    TaxonomyKind.QUESTION_TITLES: DEFAULT_QUESTION_TITLES,
}


def clean_labels(values: Iterable[object]) -> List[str]:
    """Strip labels, drop blanks and repeats, keep first-seen order."""
    cleaned: List[str] = []
    seen: set[str] = set()
    for value in values:
        if not isinstance(value, str):
            continue
        label = value.strip()
        if label and label not in seen:
            cleaned.append(label)
            seen.add(label)
    return cleaned


class TaxonomyStore:
    """Lightweight JSON-backed store for the three label lists."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or get_taxonomy_path()
        self.data: Dict[str, object] = {}

        if self.path.exists():
            try:
                loaded = json.loads(self.path.read_text(encoding="utf-8"))
                self.data = loaded if isinstance(loaded, dict) else {}
            except json.JSONDecodeError as e:
                logger.warning(f"Taxonomy file is corrupted, using defaults: {e}")
                self.data = {}
            except OSError as e:
                logger.warning(f"Failed to read taxonomy file, using defaults: {e}")
                self.data = {}

    def get(self, kind: TaxonomyKind) -> List[str]:
        """Stored list for ``kind``, or its seed list when absent/malformed."""
        raw = self.data.get(kind.value)
        if not isinstance(raw, list):
            return kind.defaults
        labels = clean_labels(raw)
        if len(labels) != len(raw):
            logger.debug(f"Ignored {len(raw) - len(labels)} malformed {kind.value} entries")
        return labels

    def save(self, kind: TaxonomyKind, labels: Iterable[object]) -> List[str]:
        """Replace the list for ``kind``. Returns the cleaned list that was stored."""
        cleaned = clean_labels(labels)
        self.data[kind.value] = cleaned
        self._save()
        return cleaned

    def add(self, kind: TaxonomyKind, label: str) -> List[str]:
        return self.save(kind, [*self.get(kind), label])

    def remove(self, kind: TaxonomyKind, label: str) -> List[str]:
        return self.save(kind, [value for value in self.get(kind) if value != label.strip()])

    def reset(self, kind: Optional[TaxonomyKind] = None) -> None:
        """Forget one stored list (or all), restoring the seed lists."""
        if kind is None:
            self.data = {}
        else:
            self.data.pop(kind.value, None)
        self._save()

    def get_subjects(self) -> List[str]:
        return self.get(TaxonomyKind.SUBJECTS)

    def save_subjects(self, subjects: Iterable[str]) -> List[str]:
        return self.save(TaxonomyKind.SUBJECTS, subjects)

    def get_levels(self) -> List[str]:
        return self.get(TaxonomyKind.LEVELS)

    def save_levels(self, levels: Iterable[str]) -> List[str]:
        return self.save(TaxonomyKind.LEVELS, levels)

    def get_question_titles(self) -> List[str]:
        return self.get(TaxonomyKind.QUESTION_TITLES)

    def save_question_titles(self, titles: Iterable[str]) -> List[str]:
        return self.save(TaxonomyKind.QUESTION_TITLES, titles)

    def _save(self) -> None:
        """Safely write the lists with atomic replacement.

        Uses a temp file to prevent corruption if write is interrupted.
        """
        temp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)

            temp_path = self.path.with_suffix('.tmp')
            temp_path.write_text(json.dumps(self.data, indent=2), encoding="utf-8")

            # Atomic rename (overwrites existing)
            temp_path.replace(self.path)
        except OSError as e:
            logger.warning(f"Failed to save taxonomies: {e}")
            if temp_path is not None and temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
