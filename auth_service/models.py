"""
Database models for the auth service
SQLAlchemy ORM models for versioned records
"""
from sqlalchemy import Boolean, Column, Integer, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    """
    User entity - one record per person, looked up by id or by email
    The version column is the optimistic locking token
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    # Starts at 1, incremented by every successful versioned update
    version = Column(Integer, nullable=False, default=1)

    email_verified = Column(Boolean, nullable=False, default=False)

    # List of {"user_pool_id", "sub", "region"} maps
    cognito_users = Column(JSON, nullable=False, default=list)

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}', version={self.version})>"
