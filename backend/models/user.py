"""User model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class User(Base):
    """Represents a clinic customer or staff member."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="")
    phone = Column(String, default="")
    hashed_password = Column(String)
    role = Column(String, nullable=False, default=ROLE_USER)  # user/admin

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
