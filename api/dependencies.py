"""API Dependencies - Authentication"""
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from api.schemas import TokenData
from domain.auth import User, UserInDB
from domain.enums import ActorRole
from domain.value_objects import Actor
from infrastructure.security import decode_access_token, get_password_hash

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# Mock database for users
# In production, this would be a database call
_fake_users_db = {
    "moderator": {
        "user_id": "moderator-1",
        "username": "moderator",
        "role": ActorRole.MODERATOR,
        "full_name": "Platform Moderator",
        "email": "moderator@example.com",
        "plain_password": "moderator123",
        "disabled": False,
    },
    "host": {
        "user_id": "host-1",
        "username": "host",
        "role": ActorRole.HOST,
        "full_name": "Experience Host",
        "email": "host@example.com",
        "plain_password": "host123",
        "disabled": False,
    },
    "guest": {
        "user_id": "guest-1",
        "username": "guest",
        "role": ActorRole.GUEST,
        "full_name": "Guest User",
        "email": "guest@example.com",
        "plain_password": "guest123",
        "disabled": False,
    },
    "former": {
        "user_id": "guest-2",
        "username": "former",
        "role": ActorRole.GUEST,
        "plain_password": "former123",
        "disabled": True,
    },
}

fake_users_db = _fake_users_db

# Cache for hashed passwords
_password_hash_cache = {}


def _get_hashed_password(username: str) -> str:
    """Lazily hash passwords on first access"""
    if username not in _password_hash_cache:
        user = _fake_users_db.get(username)
        if user and "plain_password" in user:
            _password_hash_cache[username] = get_password_hash(user["plain_password"])
    return _password_hash_cache.get(username, "")


def get_user(db, username: str):
    if username in db:
        user_dict = db[username].copy()
        if "plain_password" in user_dict:
            user_dict["hashed_password"] = _get_hashed_password(username)
            del user_dict["plain_password"]
        return UserInDB(**user_dict)
    return None


async def get_current_user(token: str = Depends(oauth2_scheme)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username, role=payload.get("role"))
    except JWTError:
        raise credentials_exception

    user = get_user(_fake_users_db, username=token_data.username)
    if user is None:
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)):
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


async def get_current_actor(current_user: User = Depends(get_current_active_user)) -> Actor:
    return current_user.as_actor()


async def require_moderator(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_moderator:
        raise HTTPException(status_code=403, detail="Moderator role required")
    return actor
