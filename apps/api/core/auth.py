"""
Authentication dependencies.

Identity is resolved by an explicit IdentityResolver. Routes depend on
``get_current_user``; which resolver runs is decided by
``get_identity_resolver`` and can be overridden per app (tests, local
tooling) instead of guessed from the environment.
"""
from abc import ABC, abstractmethod
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from core.database import get_db
from core.exceptions import UnauthorizedError
from core.security import decode_access_token
from models import Student

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


class IdentityResolver(ABC):
    """Turns request credentials into a Student or raises UnauthorizedError."""

    @abstractmethod
    def resolve(self, credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Student:
        ...


class BearerTokenIdentityResolver(IdentityResolver):
    """JWT bearer token whose ``sub`` claim is the student id."""

    def resolve(self, credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Student:
        if not credentials:
            raise UnauthorizedError("Not authenticated")

        payload = decode_access_token(credentials.credentials)
        if not payload:
            raise UnauthorizedError("Invalid authentication credentials")

        user_id = payload.get("sub")
        if not user_id:
            raise UnauthorizedError("Invalid token payload")

        try:
            student_id = UUID(user_id)
        except ValueError:
            raise UnauthorizedError("Invalid user ID format")

        student = db.query(Student).filter(Student.id == student_id).first()
        if not student:
            raise UnauthorizedError("User not found")
        return student


class StaticIdentityResolver(IdentityResolver):
    """Always resolves to one student. For local tooling; wire it in explicitly."""

    def __init__(self, student_id: UUID):
        self.student_id = student_id

    def resolve(self, credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Student:
        student = db.query(Student).filter(Student.id == self.student_id).first()
        if not student:
            raise UnauthorizedError("Configured student does not exist")
        return student


_default_resolver = BearerTokenIdentityResolver()


def get_identity_resolver() -> IdentityResolver:
    return _default_resolver


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    db: Session = Depends(get_db)
) -> Student:
    """
    Get the current authenticated student.

    Raises UnauthorizedError if the resolver cannot identify one.
    """
    return resolver.resolve(credentials, db)
