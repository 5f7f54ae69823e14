"""Best-effort topic labeling for knowledge entries.

The topic is a browsing aid only; matching never looks at it.
"""

import re

from knowledge_cache.entities import Category

# Only the head of the query is scanned; teaching queries are whole JSON documents.
MAX_SCAN_CHARS = 2000

MEDICAL_KEYWORDS: tuple[str, ...] = (
    "sodium",
    "potassium",
    "glucose",
    "hemoglobin",
    "wbc",
    "platelets",
    "creatinine",
    "bun",
    "ast",
    "alt",
    "bilirubin",
    "troponin",
    "ct scan",
    "mri",
    "x-ray",
    "ultrasound",
    "echocardiogram",
    "chest pain",
    "shortness of breath",
    "fever",
    "hypertension",
    "diabetes",
    "copd",
    "chf",
    "mi",
    "stroke",
    "pneumonia",
)

_PATTERNS = [
    (keyword, re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)")) for keyword in MEDICAL_KEYWORDS
]


def extract_topic(query: str, category: Category) -> str:
    """Return the first vocabulary keyword found in the query.

    Falls back to the category value when nothing matches.
    """
    text = query[:MAX_SCAN_CHARS].lower()
    for keyword, pattern in _PATTERNS:
        if pattern.search(text):
            return keyword
    return category.value
