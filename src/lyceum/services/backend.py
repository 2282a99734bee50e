"""BackendClient — thin async wrapper around the tutoring backend API.

Three collaborators live behind it:
- credential issuance (POST /api/session/create)
- lesson-plan generation (POST /api/lesson-plan)
- session persistence (POST /api/session-end)

Credential failures raise RealtimeConnectionError because a session cannot
start without one. Lesson-plan failures return None; the session carries on
without a plan. Persistence failures raise PersistenceError for the caller
to log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from lyceum.core.config import ApiConfig, config
from lyceum.core.errors import PersistenceError, RealtimeConnectionError
from lyceum.session.models import TopicOption
from lyceum.session.state import SessionArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionGrant:
    """What the backend issues for one tutorial."""

    ephemeral_key: str
    session_id: str | None
    topics: tuple[TopicOption, ...] = ()
    learner_profile: dict[str, Any] = field(default_factory=dict)
    user_name: str | None = None
    age_bracket: str | None = None
    session_count: int = 0

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> SessionGrant:
        key = data.get("ephemeralKey")
        if not key:
            raise RealtimeConnectionError("Session response missing ephemeral key")
        return cls(
            ephemeral_key=str(key),
            session_id=data.get("sessionId"),
            topics=tuple(
                TopicOption.from_dict(t)
                for t in data.get("topics") or []
                if isinstance(t, dict)
            ),
            learner_profile=data.get("learnerProfile") or {},
            user_name=data.get("userName"),
            age_bracket=data.get("ageBracket"),
            session_count=int(data.get("sessionCount") or 0),
        )


@dataclass(frozen=True)
class LessonPlanResult:
    """Generator output; either field may be missing."""

    lesson_plan: dict[str, Any] | None = None
    formatted_plan: str | None = None


def _error_text(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return fallback


class BackendClient:
    """Async client for the tutoring backend."""

    def __init__(self, settings: ApiConfig | None = None) -> None:
        self.settings = settings or config.api
        self._base = self.settings.base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if self.settings.token:
            return {"Authorization": f"Bearer {self.settings.token}"}
        return {}

    async def create_session(self) -> SessionGrant:
        """Fetch an ephemeral engine credential plus the session context.

        Raises RealtimeConnectionError with the backend's own message (e.g. the
        daily session limit on a 429).
        """
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
                resp = await client.post(
                    f"{self._base}/api/session/create", headers=self._headers()
                )
        except httpx.HTTPError as e:
            raise RealtimeConnectionError(f"Failed to create session: {e}") from e

        if resp.status_code >= 400:
            message = _error_text(resp, "Failed to create session")
            logger.warning("Session create rejected (%s): %s", resp.status_code, message)
            raise RealtimeConnectionError(message)

        try:
            grant = SessionGrant.from_response(resp.json())
        except RealtimeConnectionError:
            raise
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Session create returned an unreadable body: %s", e)
            raise RealtimeConnectionError("Failed to create session: invalid response") from e

        logger.info(
            "Session created: %s (%d topics)",
            grant.session_id,
            len(grant.topics),
            extra={"session_id": grant.session_id},
        )
        return grant

    async def generate_lesson_plan(
        self,
        topic_title: str,
        user_prior_knowledge: str,
        user_age: int | None = None,
        session_count: int = 0,
    ) -> LessonPlanResult | None:
        """Request a plan for the chosen topic. Returns None on failure."""
        payload: dict[str, Any] = {
            "topicTitle": topic_title,
            "userPriorKnowledge": user_prior_knowledge,
            "sessionCount": session_count,
        }
        if user_age is not None:
            payload["userAge"] = user_age

        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
                resp = await client.post(
                    f"{self._base}/api/lesson-plan",
                    json=payload,
                    headers=self._headers(),
                )
                resp.raise_for_status()
                data = resp.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            formatted = data.get("formattedPlan")
            result = LessonPlanResult(
                lesson_plan=data.get("lessonPlan") or None,
                formatted_plan=str(formatted) if formatted else None,
            )
        except Exception as e:
            logger.warning("Lesson plan generation failed for %r: %s", topic_title, e)
            return None

        if result.lesson_plan is not None and not isinstance(result.lesson_plan, dict):
            logger.warning("Lesson plan for %r is not an object, ignoring it", topic_title)
            result = LessonPlanResult(formatted_plan=result.formatted_plan)
        return result

    async def submit_session_end(self, artifact: SessionArtifact) -> None:
        """Persist the finished session. Raises PersistenceError."""
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
                resp = await client.post(
                    f"{self._base}/api/session-end",
                    json=artifact.to_payload(),
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise PersistenceError(f"Session save failed: {e}") from e

        if resp.status_code >= 400:
            raise PersistenceError(
                f"Session save rejected ({resp.status_code}): "
                f"{_error_text(resp, 'unknown error')}"
            )
        logger.info(
            "Session saved: %s (%ds, %d transcript entries)",
            artifact.session_id,
            artifact.duration,
            len(artifact.transcript),
            extra={"session_id": artifact.session_id},
        )
