"""Annotators and the cached annotation pipeline."""

from groundwork.annotate.base import Annotator, LocalAnnotator, RemoteAnnotator
from groundwork.annotate.basic import BasicAnnotator
from groundwork.annotate.claims import ClaimsAnnotator
from groundwork.annotate.dates import DatesAnnotator
from groundwork.annotate.entities import EntitiesAnnotator
from groundwork.annotate.pipeline import AnnotationPipeline

__all__ = [
    "Annotator",
    "AnnotationPipeline",
    "BasicAnnotator",
    "ClaimsAnnotator",
    "DatesAnnotator",
    "EntitiesAnnotator",
    "LocalAnnotator",
    "RemoteAnnotator",
    "build_annotators",
]


def build_annotators(claims_chars: int = 500, entities_chars: int = 800) -> dict[str, Annotator]:
    """Return the annotator registry keyed by name."""
    return {
        "basic": BasicAnnotator(),
        "dates": DatesAnnotator(),
        "claims": ClaimsAnnotator(payload_chars=claims_chars),
        "entities": EntitiesAnnotator(payload_chars=entities_chars),
    }
