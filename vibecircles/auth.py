import os
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
import secrets
import hashlib

from fastapi import Depends, HTTPException, Request
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from .database import get_session
from .models.users import User

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', str(60 * 24 * 7)))

TOKEN_COOKIE = 'token'

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto', bcrypt__rounds=config.BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_ctx.verify(password, hashed)


def generate_reset_token() -> str:
    # 256-bit random token, URL-safe
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    encoded = jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)
    return encoded


def decode_token(token: str):
    try:
        payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


def extract_token(request: Request) -> str | None:
    """Bearer header first, then the `token` cookie set at login."""
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        token = header.split(' ', 1)[1].strip()
        if token:
            return token
    return request.cookies.get(TOKEN_COOKIE)


async def _resolve_user(request: Request, session: AsyncSession) -> User | None:
    token = extract_token(request)
    if not token:
        return None
    payload = decode_token(token)
    if not payload or 'id' not in payload:
        return None
    q = await session.execute(select(User).where(User.id == payload['id'], User.is_active.is_(True)))
    return q.scalars().first()


async def get_current_user(request: Request, session: AsyncSession = Depends(get_session)) -> User:
    if not extract_token(request):
        raise HTTPException(401, 'Not authorized to access this route')
    user = await _resolve_user(request, session)
    if not user:
        raise HTTPException(401, 'Not authorized to access this route')
    return user


async def get_optional_user(request: Request, session: AsyncSession = Depends(get_session)) -> User | None:
    # invalid tokens are ignored on public routes
    return await _resolve_user(request, session)

