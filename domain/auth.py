"""Domain Entities - Auth"""
from typing import Optional

from pydantic import BaseModel

from domain.enums import ActorRole
from domain.value_objects import Actor


class User(BaseModel):
    """User Entity"""
    user_id: str
    username: str
    role: ActorRole = ActorRole.GUEST
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False

    class Config:
        from_attributes = True

    def as_actor(self) -> Actor:
        return Actor(actor_id=self.user_id, role=self.role)


class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str
