"""Typed failures raised by the contest engine.

Admission errors and pipeline-fatal errors propagate to callers. Transport
errors of a single judge call never leave the evaluation pipeline: they are
folded into that test case's verdict.
"""
from __future__ import annotations

import enum
from uuid import UUID


class ArenaError(Exception):
	"""Base class for every engine failure surfaced to clients."""


class AdmissionReason(enum.StrEnum):
	CONTEST_NOT_ACTIVE = "contest_not_active"
	CONTEST_NOT_FOUND = "contest_not_found"
	PROBLEM_NOT_IN_CONTEST = "problem_not_in_contest"


class AdmissionDenied(ArenaError):
	def __init__(self, reason: AdmissionReason, detail: str | None = None) -> None:
		self.reason = AdmissionReason(reason)
		self.detail = detail
		super().__init__(f"{self.reason.value}: {detail}" if detail else self.reason.value)


class UnsupportedLanguage(ArenaError):
	def __init__(self, language: str) -> None:
		self.language = language
		super().__init__(f"Unsupported language: {language!r}")


class EvaluationTransportError(ArenaError):
	"""A single judge call failed before producing a verdict."""

	def __init__(self, message: str, *, timed_out: bool = False) -> None:
		self.timed_out = timed_out
		super().__init__(message)


class PipelineFatalError(ArenaError):
	"""The evaluation could not complete; the submission stays ``pending``."""


class SubmissionNotFound(PipelineFatalError, LookupError):
	def __init__(self, submission_id: UUID, what: str = "Submission") -> None:
		self.submission_id = submission_id
		super().__init__(f"{what} for submission {submission_id} is not found")


class EvaluationPersistFailure(PipelineFatalError):
	def __init__(self, submission_id: UUID, cause: BaseException | None = None) -> None:
		self.submission_id = submission_id
		self.cause = cause
		super().__init__(f"Failed to persist evaluation result for submission {submission_id}; try again")


__all__ = [
	"AdmissionDenied",
	"AdmissionReason",
	"ArenaError",
	"EvaluationPersistFailure",
	"EvaluationTransportError",
	"PipelineFatalError",
	"SubmissionNotFound",
	"UnsupportedLanguage",
]
