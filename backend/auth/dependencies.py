import logging

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.guard import ensure_admin
from backend.core.errors import AuthenticationError, AuthorizationError
from backend.database import get_db
from backend.models.user import User

logger = logging.getLogger(__name__)

# auto_error is off so a missing header reaches us and becomes a 401.
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access denied: please sign in first.")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise AuthorizationError("Invalid or expired token.") from exc

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise AuthorizationError("Invalid token subject.") from exc

    user = db.get(User, user_id)
    if user is None:
        raise AuthorizationError("User not found.")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    ensure_admin(current_user)
    return current_user
