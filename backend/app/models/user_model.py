from pydantic import BaseModel, ConfigDict
from typing import Optional


class User(BaseModel):
    """Caller identity taken from a verified Firebase ID token."""

    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    phone_number: Optional[str] = None
    picture: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_claims(cls, claims: dict) -> "User":
        return cls(
            uid=claims.get("uid") or claims.get("sub"),
            email=claims.get("email"),
            email_verified=bool(claims.get("email_verified", False)),
            name=claims.get("name"),
            phone_number=claims.get("phone_number"),
            picture=claims.get("picture"),
        )
