"""
Signup and login.
"""
import logging

from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, to_object_id
from errors import Conflict, InvalidCredentials, ValidationError
from schemas import User
from security import TokenService, hash_password, public_user, verify_password

logger = logging.getLogger(__name__)

LOGIN_FAILED = "Invalid email or password"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def signup(db, tokens: TokenService, email: str, password: str, name: str, phone: str) -> dict:
    if not all([email, password, name, phone]):
        raise ValidationError("All fields are required")
    email = normalize_email(email)

    try:
        user = User(email=email, password_hash="", name=name, phone=phone)
    except PydanticValidationError as e:
        raise ValidationError(e.errors()[0]["msg"])

    if db[USERS].find_one({"email": user.email}):
        raise Conflict("User already exists with this email")

    user.password_hash = hash_password(password)
    try:
        user_id = create_document(db, USERS, user)
    except DuplicateKeyError:
        # lost a race with a concurrent signup for the same address
        raise Conflict("User already exists with this email")

    logger.info("User %s signed up", user_id)
    stored = db[USERS].find_one({"_id": to_object_id(user_id)})
    return {"token": tokens.issue(user_id), "user": public_user(stored)}


def login(db, tokens: TokenService, email: str, password: str) -> dict:
    user = db[USERS].find_one({"email": normalize_email(email)})
    if not user:
        logger.warning("Login failed: unknown email")
        raise InvalidCredentials(LOGIN_FAILED)
    if not verify_password(password, user.get("passwordHash")):
        logger.warning("Login failed for user %s: bad password", user["_id"])
        raise InvalidCredentials(LOGIN_FAILED)

    logger.info("User %s logged in", user["_id"])
    return {"token": tokens.issue(str(user["_id"])), "user": public_user(user)}
