"""User domain models."""

from pwdlib import PasswordHash
from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from shelfkeeper.database.base import Base, TimestampMixin

pwd_hasher = PasswordHash.recommended()


class User(Base, TimestampMixin):
    """Catalog user.

    Owns books, readings and any credentials issued by the auth and oauth
    features. Read-only to the credential code paths.
    """

    __tablename__ = "users"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity (globally unique)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Authentication
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    def verify_password(self, plain_password: str) -> bool:
        """Verify a password against the hash using Argon2.

        Salt is automatically extracted from the hash by pwdlib.
        """
        return pwd_hasher.verify(plain_password, self.hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using Argon2.

        Salt is automatically generated and embedded in the returned hash.
        """
        return pwd_hasher.hash(password)
