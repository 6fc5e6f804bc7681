"""User accounts: signup, login and plan changes."""
from datetime import datetime, timezone
from typing import Optional, Tuple
import logging

from pymongo.errors import DuplicateKeyError

from auth import hash_password, verify_password, TokenService
from models import User, Plan

logger = logging.getLogger(__name__)


class EmailAlreadyExistsError(ValueError):
    pass


class InvalidCredentialsError(ValueError):
    pass


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Credential store for DocQuery users."""

    def __init__(self, database, tokens: TokenService):
        self.database = database
        self.tokens = tokens

    def _get_db(self):
        return self.database.get_db()

    async def signup(self, email: str, password: str) -> Tuple[User, str]:
        """Register a new user on the free plan and issue a token."""
        db = self._get_db()
        email = normalize_email(email)

        existing = await db.users.find_one({"email": email}, {"_id": 0})
        if existing:
            raise EmailAlreadyExistsError("Email already exists")

        user = User(email=email, password_hash=hash_password(password))
        try:
            await db.users.insert_one(user.model_dump())
        except DuplicateKeyError:
            raise EmailAlreadyExistsError("Email already exists")

        logger.info(f"New user registered: {user.user_id}")
        return user, self.tokens.create_access_token(user.user_id)

    async def login(self, email: str, password: str) -> Tuple[User, str]:
        db = self._get_db()
        doc = await db.users.find_one({"email": normalize_email(email)}, {"_id": 0})
        if not doc or not verify_password(password, doc["password_hash"]):
            logger.warning("Login failed: invalid credentials")
            raise InvalidCredentialsError("Invalid credentials")

        user = User(**doc)
        return user, self.tokens.create_access_token(user.user_id)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        db = self._get_db()
        doc = await db.users.find_one({"user_id": user_id}, {"_id": 0})
        if doc:
            return User(**doc)
        return None

    async def set_plan(
        self,
        user_id: str,
        plan: Plan,
        stripe_customer_id: Optional[str] = None,
    ) -> bool:
        """Set a user's plan. Returns False when the user does not exist."""
        db = self._get_db()
        updates = {"plan": plan.value, "updated_at": datetime.now(timezone.utc)}
        if stripe_customer_id:
            updates["stripe_customer_id"] = stripe_customer_id

        result = await db.users.update_one({"user_id": user_id}, {"$set": updates})
        if result.matched_count == 0:
            return False

        logger.info(f"Plan for user {user_id} set to {plan.value}")
        return True
