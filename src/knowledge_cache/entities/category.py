"""Knowledge categories."""

from enum import Enum

from knowledge_cache.errors import ValidationFailure


class Category(str, Enum):
    """Closed set of knowledge categories.

    Report categories (lab, imaging, note) are answered by a report
    interpretation. The teaching categories (pearls, questions) are
    generated from an existing interpretation.
    """

    LAB = "lab"
    IMAGING = "imaging"
    NOTE = "note"
    PEARLS = "pearls"
    QUESTIONS = "questions"

    @property
    def is_teaching(self) -> bool:
        """Whether entries in this category are derived from an interpretation."""
        return self in (Category.PEARLS, Category.QUESTIONS)

    @classmethod
    def parse(cls, value: "Category | str") -> "Category":
        """Coerce a raw string into a Category.

        Raises:
            ValidationFailure: If the value names no known category
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise ValidationFailure(f"Unknown category: {value!r}", category=str(value)) from e
