from bson import ObjectId
from typing import List, Optional
from app.modules.auth.schemas.actor import Actor


class UserService:
    def __init__(self, db):
        self.db = db
        self.collection = db["users"]

    def get_user_by_username(self, username: str) -> Optional[dict]:
        return self.collection.find_one({"username": username})

    def get_user_by_id(self, user_id: str) -> Optional[dict]:
        if not ObjectId.is_valid(user_id):
            return None
        return self.collection.find_one({"_id": ObjectId(user_id)})

    def get_users_by_roles(self, company_id: str, roles: List[str]) -> List[dict]:
        return list(self.collection.find({
            "company_id": company_id,
            "role": {"$in": roles},
            "is_active": {"$ne": False}
        }))

    def to_actor(self, user: dict) -> Actor:
        return Actor(
            id=str(user["_id"]),
            role=user["role"],
            company_id=user.get("company_id"),
            cliente_id=user.get("cliente_id"),
            full_name=user.get("full_name"),
            email=user.get("email")
        )
