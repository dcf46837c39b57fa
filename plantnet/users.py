from typing import Dict, List, Optional

from .serializers import utc_timestamp

ALLOWED_USER_ROLES = {"customer", "seller", "admin"}
DEFAULT_USER_ROLE = "customer"

SELLER_REQUESTED_STATUS = "requsted"
VERIFIED_STATUS = "verified"


class UserDirectory:
    """User profiles keyed by email, with the seller-request workflow."""

    def __init__(self, db):
        self.collection = db.users

    def find_by_email(self, email: str) -> Optional[Dict]:
        return self.collection.find_one({"email": email})

    def upsert_on_login(self, email: str, profile: Dict):
        """Insert a first-time user as a customer, otherwise refresh ``last_login``.

        Two concurrent first logins can both miss the lookup and both insert;
        no unique index is enforced here.
        """
        now = utc_timestamp()
        query = {"email": email}
        if self.collection.find_one(query):
            return self.collection.update_one(
                query, {"$set": {"last_login": now}}, upsert=True
            )

        user_document = dict(profile)
        user_document.update(
            {
                "email": email,
                "role": DEFAULT_USER_ROLE,
                "create_at": now,
                "last_login": now,
            }
        )
        return self.collection.insert_one(user_document)

    def get_role(self, email: str) -> Optional[str]:
        user_document = self.find_by_email(email)
        if not user_document:
            return None
        return user_document.get("role")

    def update_role(self, email: str, role: str):
        return self.collection.update_one(
            {"email": email},
            {"$set": {"role": role, "status": VERIFIED_STATUS}},
            upsert=True,
        )

    def request_seller(self, email: str):
        return self.collection.update_one(
            {"email": email}, {"$set": {"status": SELLER_REQUESTED_STATUS}}
        )

    def list_other_users(self, caller_email: str) -> List[Dict]:
        return list(self.collection.find({"email": {"$ne": caller_email}}))
