"""
Password hashing, bearer tokens and the request auth gate.
"""
import hashlib
import hmac
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from database import USERS, get_db, to_object_id
from errors import InvalidToken, Unauthenticated

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260000
_HASH_SCHEME = "pbkdf2_sha256"

security = HTTPBearer(auto_error=False)


def hash_password(password: str, iterations: int = None) -> str:
    iterations = iterations or PBKDF2_ITERATIONS
    salt = os.urandom(16).hex()
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations).hex()
    return f"{_HASH_SCHEME}${iterations}${salt}${digest}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    try:
        scheme, iterations, salt, digest = stored.split("$")
        iterations = int(iterations)
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations).hex()
    return hmac.compare_digest(candidate, digest)


class TokenService:
    """Issues and verifies signed bearer tokens carrying a user id."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl: timedelta = timedelta(days=7)):
        if not secret:
            raise ValueError("a signing secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    def issue(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"userId": str(user_id), "iat": now, "exp": now + self.ttl}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token expired")
        except jwt.InvalidTokenError:
            raise InvalidToken("Invalid token")
        user_id = payload.get("userId")
        if not user_id:
            raise InvalidToken("Invalid token payload")
        return user_id


def public_user(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "email": doc.get("email"),
        "name": doc.get("name"),
        "phone": doc.get("phone"),
    }


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenService = Depends(get_token_service),
    db=Depends(get_db),
) -> dict:
    if credentials is None:
        raise Unauthenticated("No Authorization header")
    try:
        user_id = tokens.verify(credentials.credentials)
    except InvalidToken as e:
        logger.warning("Rejected bearer token: %s", e)
        raise Unauthenticated(str(e))

    oid = to_object_id(user_id)
    user = db[USERS].find_one({"_id": oid}) if oid else None
    if not user:
        logger.warning("Token for unknown user %s", user_id)
        raise Unauthenticated("User not found")
    return public_user(user)
