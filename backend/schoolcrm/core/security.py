from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from schoolcrm.core.config import settings
from schoolcrm.core.exceptions import Unauthenticated

security = HTTPBearer(auto_error=False)


class TokenPayload:
    def __init__(self, sub: str, exp: datetime, name: str | None = None, role: str | None = None):
        self.sub = sub
        self.exp = exp
        self.name = name
        self.role = role


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def create_access_token(
    subject: str,
    name: str | None = None,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject), "name": name, "role": role}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> TokenPayload:
    if credentials is None:
        raise Unauthenticated()
    try:
        payload = jwt.decode(credentials.credentials, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise Unauthenticated("Could not validate credentials")

    sub = payload.get("sub")
    if not sub:
        raise Unauthenticated("Invalid token payload")
    return TokenPayload(
        sub=sub,
        exp=payload.get("exp"),
        name=payload.get("name"),
        role=payload.get("role"),
    )
