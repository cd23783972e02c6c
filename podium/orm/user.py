"""
podium/orm/user.py
Tracker user. Authentication lives elsewhere; this table only carries
what the prediction engine reads (role and display names).
"""
from enum import Enum

from sqlalchemy import Column, String, Boolean, CheckConstraint

from podium.orm.base import BaseModel, isoformat


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class User(BaseModel):
    __tablename__ = "users"

    username = Column(String(64), unique=True, nullable=False, index=True)
    realname = Column(String(128), nullable=True)
    role = Column(String(16), nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            f"role IN ('{UserRole.ADMIN.value}', '{UserRole.USER.value}')",
            name="ck_user_role_valid"
        ),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "realname": self.realname,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": isoformat(self.created_at),
        }
