"""Domain exceptions."""

from __future__ import annotations


class LearnpulseError(Exception):
    """Base class for domain errors."""


class ProgressConflictError(LearnpulseError):
    """A concurrent write changed the progress record first. Safe to retry."""

    def __init__(self, learner_id: str, course_id: str) -> None:
        super().__init__(f"Progress for learner {learner_id} in course {course_id} was modified concurrently")
        self.learner_id = learner_id
        self.course_id = course_id


class SessionConflictError(LearnpulseError):
    """The open analytics session could not be resolved after a create race."""


class ReportJobNotFoundError(LearnpulseError):
    """No report job with the given id."""
