"""
Topic Classification Contract
=============================
Optional enrichment: a collaborator that labels a question with a topic
inside its subject. The classifier itself (OCR, remote model) lives
outside this package; this module defines what the pipeline expects of
it and how a process-wide client is set up.

A classifier is never allowed to affect segmentation: any error or an
unknown label leaves ``Question.topic`` unset.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Optional, Protocol

from .models import Subject

logger = logging.getLogger(__name__)

GENERAL_TOPIC = "General"

# Shortest text worth sending to a classifier
MIN_CLASSIFY_CHARS = 20

TOPIC_CATEGORIES: dict[Subject, tuple[str, ...]] = {
    Subject.PHYSICS: (
        "Kinematics", "Dynamics/Forces", "Energy/Work", "Momentum",
        "Rotational Motion", "Gravity", "Waves", "Sound", "Optics/Light",
        "Electricity/Circuits", "Magnetism", "Electromagnetism",
        "Modern Physics/Quantum", "Thermodynamics", "Fluids",
        "Simple Machines",
    ),
    Subject.BIOLOGY: (
        "Cell Biology", "Genetics", "Evolution", "Ecology",
        "Anatomy/Physiology", "Molecular Biology", "Biochemistry",
        "Microbiology", "Botany", "Zoology", "Taxonomy", "Biomes/Ecosystems",
    ),
    Subject.CHEMISTRY: (
        "Atomic Structure", "Chemical Bonding", "Stoichiometry",
        "Acids/Bases", "Redox Reactions", "Thermochemistry", "Kinetics",
        "Equilibrium", "Solutions", "Organic Chemistry", "Nuclear Chemistry",
        "Periodic Table",
    ),
    Subject.EARTH_SCIENCE: (
        "Geology/Rocks", "Plate Tectonics", "Earthquakes/Volcanoes",
        "Weathering/Erosion", "Meteorology/Weather", "Oceanography",
        "Astronomy/Solar System", "Stars/Galaxies", "Earth History",
        "Minerals", "Fossils", "Climate",
    ),
}


class TopicClassifier(Protocol):
    """Returns a topic label for question text, or None."""

    def classify(self, text: str, subject: Subject) -> Optional[str]: ...


def normalize_topic(label: Optional[str], subject: Subject) -> Optional[str]:
    """Accept only labels from the subject's category list (or General)."""
    if not label:
        return None
    label = label.strip()
    if label == GENERAL_TOPIC or label in TOPIC_CATEGORIES[subject]:
        return label
    logger.debug(f"Discarding unknown {subject.value} topic: {label!r}")
    return None


def classify_topic(
    classifier: Optional[TopicClassifier],
    text: str,
    subject: Subject,
) -> Optional[str]:
    """Run a classifier defensively. Never raises."""
    if classifier is None or len((text or "").strip()) < MIN_CLASSIFY_CHARS:
        return None
    try:
        return normalize_topic(classifier.classify(text, subject), subject)
    except Exception as e:
        logger.warning(f"Topic classification failed: {e}")
        return None


# ─── Process-wide Handle ─────────────────────────────────────────────────────


class HandleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    ERROR = "error"


class ClassifierHandle:
    """
    Lazily builds a classifier from ``factory`` on first use, once per
    process. A failed build is remembered; ``reset()`` allows a retry.
    """

    def __init__(self, factory: Callable[[], TopicClassifier]):
        self._factory = factory
        self._lock = threading.Lock()
        self._classifier: Optional[TopicClassifier] = None
        self.state = HandleState.UNINITIALIZED
        self.last_error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.state == HandleState.READY

    def get(self) -> Optional[TopicClassifier]:
        """Return the classifier, building it if needed; None on error."""
        with self._lock:
            if self.state == HandleState.UNINITIALIZED:
                try:
                    self._classifier = self._factory()
                    self.state = HandleState.READY
                    logger.info("Topic classifier ready")
                except Exception as e:
                    self.state = HandleState.ERROR
                    self.last_error = str(e)
                    logger.error(f"Topic classifier initialization failed: {e}")
            return self._classifier

    def reset(self):
        with self._lock:
            self._classifier = None
            self.state = HandleState.UNINITIALIZED
            self.last_error = None


_default_handle: Optional[ClassifierHandle] = None
_handle_lock = threading.Lock()


def install_classifier(factory: Callable[[], TopicClassifier]) -> ClassifierHandle:
    """Register the process-wide classifier factory."""
    global _default_handle
    with _handle_lock:
        _default_handle = ClassifierHandle(factory)
        return _default_handle


def get_default_handle() -> Optional[ClassifierHandle]:
    with _handle_lock:
        return _default_handle
