from backend.core.errors import AuthorizationError
from backend.models.user import User


def ensure_admin(user: User, message: str = 'Administrator privileges required.') -> None:
    if not user.is_admin:
        raise AuthorizationError(message)


def ensure_owner_or_admin(user: User, owner_id: int, message: str) -> None:
    if user.is_admin:
        return
    if owner_id != user.id:
        raise AuthorizationError(message)
