import logging
from typing import Optional, List

from pymongo.errors import DuplicateKeyError

from database import Repository, now, oid
from errors import Conflict, NotFound, ValidationError
from schemas import User, ProfileUpdate, ROLES, USER_STATUSES

logger = logging.getLogger(__name__)


class UserDirectory:
    """Owns the users collection: registration, lookup and admin transitions."""

    def __init__(self, database):
        self.users = Repository(database["users"])

    @staticmethod
    def ensure_indexes(database) -> None:
        database["users"].create_index("email", unique=True)

    def register(self, user: User, allow_overrides: bool = False) -> str:
        """Create a user record.

        Role and status in the payload are honoured only when the caller is
        allowed to set them (an admin registering someone); self-registration
        always starts as an active donor.
        """
        doc = user.model_dump()
        if self.lookup(doc["email"]):
            raise Conflict("User already exists")
        if not allow_overrides:
            doc["role"] = "donor"
            doc["status"] = "active"
        doc["createdAt"] = now()
        try:
            user_id = self.users.insert(doc)
        except DuplicateKeyError:
            # lost a race with a concurrent registration
            raise Conflict("User already exists")
        logger.info(f"Registered user {doc['email']} as {doc['role']}")
        return user_id

    def lookup(self, email: str) -> Optional[dict]:
        return self.users.find_one({"email": email})

    def find(self, email: str) -> dict:
        user = self.lookup(email)
        if not user:
            raise NotFound("User not found")
        return user

    def search(self, blood_group: Optional[str] = None, district: Optional[str] = None,
               upazila: Optional[str] = None, status: Optional[str] = None) -> List[dict]:
        """Admin-facing search. No status constraint unless one is given."""
        query = self._location_query(blood_group, district, upazila)
        if status and status != "all":
            query["status"] = status
        return self.users.find(query, sort=[("createdAt", -1)])

    def search_donors(self, blood_group: Optional[str] = None, district: Optional[str] = None,
                      upazila: Optional[str] = None) -> List[dict]:
        """Donor-facing search, restricted to active accounts."""
        query = self._location_query(blood_group, district, upazila)
        query["status"] = "active"
        return self.users.find(query)

    def update_profile(self, email: str, patch: ProfileUpdate) -> bool:
        """Merge profile fields; False when nothing changed or no such user."""
        fields = patch.model_dump(exclude_none=True)
        return self.users.update({"email": email}, fields)

    def set_status(self, user_id: str, status: str) -> bool:
        if status not in USER_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        changed = self.users.update({"_id": oid(user_id)}, {"status": status})
        if changed:
            logger.info(f"User {user_id} status set to {status}")
        return changed

    def set_role(self, user_id: str, role: str) -> bool:
        if role not in ROLES:
            raise ValidationError(f"Invalid role: {role}")
        changed = self.users.update({"_id": oid(user_id)}, {"role": role})
        if changed:
            logger.info(f"User {user_id} role set to {role}")
        return changed

    @staticmethod
    def _location_query(blood_group, district, upazila) -> dict:
        query = {}
        if blood_group:
            query["blood"] = blood_group
        if district:
            query["district"] = district
        if upazila:
            query["upazila"] = upazila
        return query
