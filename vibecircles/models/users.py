from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, func
from . import Base

ROLES = ('user', 'moderator', 'admin')


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default='user')
    is_active = Column(Boolean, nullable=False, default=True)

    # profile
    full_name = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    location = Column(String(100), nullable=True)
    website = Column(String(255), nullable=True)
    gender = Column(String(20), nullable=True)
    privacy = Column(String(20), nullable=False, default='public')
    birthday = Column(Date, nullable=True)
    avatar_url = Column(String(255), nullable=True)

    reset_token_hash = Column(String(128), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
