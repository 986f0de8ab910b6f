"""Domain model for stored user records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class User:
    """Represents a user record stored in the key-value table."""

    id: str
    name: str
    email: str
    phone: Optional[str]
    created_at: str
    updated_at: str

    def to_item(self) -> Dict[str, Any]:
        """Return the stored/wire representation; ``phone`` is always present."""

        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_item(item: Mapping[str, Any]) -> "User":
        phone = item.get("phone")
        return User(
            id=str(item["id"]),
            name=str(item.get("name", "")),
            email=str(item.get("email", "")),
            phone=str(phone) if phone is not None else None,
            created_at=str(item.get("createdAt", "")),
            updated_at=str(item.get("updatedAt", item.get("createdAt", ""))),
        )


__all__ = ["User"]
