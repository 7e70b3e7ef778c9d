"""Signup bridge: a signed key links the mobile-number check to account creation."""

import logging

from .exceptions import AuthorizationError, ValidationError
from .models import UserRecord
from ..database.models import UserModel
from ..security.tokens import TokenSigner, issue_signup_key, verify_signup_key

logger = logging.getLogger(__name__)


class SignupBridge:
    def __init__(self, db, signer: TokenSigner, key_ttl_minutes: int = 10):
        self.users = UserModel(db)
        self.signer = signer
        self.key_ttl_minutes = key_ttl_minutes

    def check_user(self, mobile: str) -> dict:
        """``{"exists": True}`` for a known number, otherwise a signup key for it."""
        if not mobile or not mobile.strip():
            raise ValidationError("Mobile number is required")
        mobile = mobile.strip()
        if self.users.exists_by_mobile(mobile):
            return {"exists": True}
        return {"exists": False, "key": issue_signup_key(self.signer, mobile, self.key_ttl_minutes)}

    def signup(self, subject_id: str, key: str, name: str) -> UserRecord:
        """Create the user for ``subject_id`` with the mobile number carried by ``key``."""
        mobile = verify_signup_key(self.signer, key)
        if mobile is None:
            raise AuthorizationError("Invalid or expired signup key")
        if not name or not name.strip():
            raise ValidationError("Name is required")
        if self.users.get(subject_id) is not None or self.users.exists_by_mobile(mobile):
            raise ValidationError("User already registered")

        user = self.users.create(UserRecord(user_id=subject_id, name=name.strip(), mobile=mobile))
        logger.info("Registered user %s", subject_id)
        return user
