"""
Services — clients for the external collaborators a tutorial depends on.
"""

from lyceum.services.backend import BackendClient, LessonPlanResult, SessionGrant

__all__ = ["BackendClient", "LessonPlanResult", "SessionGrant"]
