"""Client for a Judge0-compatible code execution service.

One call runs the candidate program against a single test case and waits for the
verdict (``wait=true``). Anything that prevents a verdict from coming back is
raised as :class:`~code_arena.errors.EvaluationTransportError`.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

import aiohttp

from code_arena.config import Settings
from code_arena.db.enums import ProgrammingLanguage
from code_arena.errors import EvaluationTransportError, UnsupportedLanguage

logger = logging.getLogger(__name__)

JUDGE_LANGUAGE_IDS: dict[str, int] = {
	ProgrammingLanguage.JAVASCRIPT: 63,
	ProgrammingLanguage.PYTHON: 71,
	ProgrammingLanguage.JAVA: 62,
	ProgrammingLanguage.CPP: 54,
	ProgrammingLanguage.C: 50,
}

# Judge0 status ids
STATUS_ACCEPTED = 3
STATUS_WRONG_ANSWER = 4
STATUS_TIME_LIMIT_EXCEEDED = 5
STATUS_COMPILATION_ERROR = 6
RUNTIME_ERROR_STATUSES = frozenset(range(7, 13))


class FailureKind(enum.StrEnum):
	WRONG_ANSWER = "wrong_answer"
	TIME_LIMIT = "time_limit"
	COMPILATION = "compilation"
	RUNTIME = "runtime"
	JUDGE_ERROR = "judge_error"
	TRANSPORT = "transport"
	TIMEOUT = "timeout"


def language_id_for(language: str) -> int:
	"""Judge language id for one of the supported languages."""
	key = (language or "").strip().lower()
	try:
		return JUDGE_LANGUAGE_IDS[key]
	except KeyError:
		raise UnsupportedLanguage(language) from None


def classify_status(status_id: int) -> Optional[FailureKind]:
	"""None for an accepted run, otherwise the failure class of a judge status id."""
	if status_id == STATUS_ACCEPTED:
		return None
	if status_id == STATUS_WRONG_ANSWER:
		return FailureKind.WRONG_ANSWER
	if status_id == STATUS_TIME_LIMIT_EXCEEDED:
		return FailureKind.TIME_LIMIT
	if status_id == STATUS_COMPILATION_ERROR:
		return FailureKind.COMPILATION
	if status_id in RUNTIME_ERROR_STATUSES:
		return FailureKind.RUNTIME
	return FailureKind.JUDGE_ERROR


@dataclass(slots=True)
class JudgeRequest:
	source_code: str
	language_id: int
	stdin: str
	expected_output: str
	cpu_time_limit: Optional[float] = None
	memory_limit: Optional[int] = None

	def to_payload(self) -> dict[str, Any]:
		payload: dict[str, Any] = {
			"source_code": self.source_code,
			"language_id": self.language_id,
			"stdin": self.stdin,
			"expected_output": self.expected_output.strip(),
		}
		if self.cpu_time_limit is not None:
			payload["cpu_time_limit"] = self.cpu_time_limit
		if self.memory_limit is not None:
			payload["memory_limit"] = self.memory_limit
		return payload


@dataclass(slots=True)
class JudgeResponse:
	verdict_id: int
	status_description: str
	stdout: str = ""
	stderr: Optional[str] = None
	compile_output: Optional[str] = None
	time_used: Optional[float] = None
	memory_used: Optional[int] = None

	@property
	def passed(self) -> bool:
		return self.verdict_id == STATUS_ACCEPTED

	@property
	def error_text(self) -> Optional[str]:
		return self.stderr or self.compile_output or None

	@classmethod
	def from_payload(cls, data: Any) -> "JudgeResponse":
		if not isinstance(data, Mapping):
			raise EvaluationTransportError(f"Malformed judge response: expected an object, got {type(data).__name__}")
		status = data.get("status")
		if not isinstance(status, Mapping) or not isinstance(status.get("id"), int):
			raise EvaluationTransportError("Malformed judge response: missing status id")
		try:
			time_used = float(data["time"]) if data.get("time") is not None else None
			memory_used = int(data["memory"]) if data.get("memory") is not None else None
		except (TypeError, ValueError) as exc:
			raise EvaluationTransportError(f"Malformed judge response: {exc}") from exc
		return cls(
			verdict_id=status["id"],
			status_description=str(status.get("description") or ""),
			stdout=(data.get("stdout") or "").strip(),
			stderr=data.get("stderr"),
			compile_output=data.get("compile_output"),
			time_used=time_used,
			memory_used=memory_used,
		)


class Judge(Protocol):
	async def execute(self, request: JudgeRequest) -> JudgeResponse: ...


class JudgeClient:
	"""HTTP client bound to one judge endpoint; reuses a single aiohttp session."""

	def __init__(
		self,
		base_url: Optional[str] = None,
		*,
		api_key: Optional[str] = None,
		api_key_header: Optional[str] = None,
		timeout: Optional[float] = None,
		session: Optional[aiohttp.ClientSession] = None,
	) -> None:
		settings = Settings()
		self.base_url = (base_url or settings.judge_api_url).rstrip("/")
		self.api_key = api_key if api_key is not None else settings.judge_api_key
		self.api_key_header = api_key_header or settings.judge_api_key_header
		self.timeout = float(timeout if timeout is not None else settings.judge_timeout_seconds)
		self._session = session
		self._owns_session = session is None

	async def __aenter__(self) -> "JudgeClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.close()

	def _get_session(self) -> aiohttp.ClientSession:
		if self._session is None or self._session.closed:
			self._session = aiohttp.ClientSession()
			self._owns_session = True
		return self._session

	async def close(self) -> None:
		if self._owns_session and self._session is not None and not self._session.closed:
			await self._session.close()
		self._session = None

	def _headers(self) -> dict[str, str]:
		headers = {"Content-Type": "application/json"}
		if self.api_key:
			headers[self.api_key_header] = self.api_key
		return headers

	async def execute(self, request: JudgeRequest) -> JudgeResponse:
		"""Run one test case; bounded by ``self.timeout`` seconds."""
		url = f"{self.base_url}/submissions"
		try:
			async with self._get_session().post(
				url,
				params={"base64_encoded": "false", "wait": "true"},
				json=request.to_payload(),
				headers=self._headers(),
				timeout=aiohttp.ClientTimeout(total=self.timeout),
			) as resp:
				if resp.status >= 400:
					body = await resp.text()
					raise EvaluationTransportError(f"Judge responded with HTTP {resp.status}: {body[:200]}")
				data = await resp.json(content_type=None)
		except TimeoutError as exc:
			raise EvaluationTransportError(f"Judge call timed out after {self.timeout:g}s", timed_out=True) from exc
		except aiohttp.ClientError as exc:
			raise EvaluationTransportError(f"Judge is unreachable: {exc}") from exc
		except ValueError as exc:
			raise EvaluationTransportError(f"Malformed judge response: {exc}") from exc

		response = JudgeResponse.from_payload(data)
		logger.debug("Judge verdict %s (%s)", response.verdict_id, response.status_description)
		return response


__all__ = [
	"FailureKind",
	"Judge",
	"JudgeClient",
	"JudgeRequest",
	"JudgeResponse",
	"JUDGE_LANGUAGE_IDS",
	"classify_status",
	"language_id_for",
]
