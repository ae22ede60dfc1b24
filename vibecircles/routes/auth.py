import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..auth import ACCESS_TOKEN_EXPIRE_MINUTES, TOKEN_COOKIE, create_access_token, get_current_user
from ..crud import users as crud_users
from ..database import get_session
from ..models.users import User
from ..schemas.common import envelope
from ..schemas.users import (
    RegisterIn, LoginIn, ChangePasswordIn, ForgotPasswordIn, ResetPasswordIn, UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_SENT = 'If the email exists, a password reset link has been sent'


def _issue_token(response: Response, user: User) -> str:
    token = create_access_token({'id': user.id, 'role': user.role})
    response.set_cookie(
        TOKEN_COOKIE, token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite='lax',
    )
    return token


@router.post('/register', status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, response: Response, session: AsyncSession = Depends(get_session)):
    user = await crud_users.create_user(session, payload)
    token = _issue_token(response, user)
    logger.info({'msg': 'user_registered', 'user_id': user.id})
    return envelope({'user': UserOut.model_validate(user), 'token': token}, 'User registered successfully')


@router.post('/login')
async def login(payload: LoginIn, response: Response, session: AsyncSession = Depends(get_session)):
    user = await crud_users.authenticate_user(session, payload.email, payload.password)
    token = _issue_token(response, user)
    return envelope({'user': UserOut.model_validate(user), 'token': token}, 'Login successful')


@router.get('/me')
async def me(current_user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    stats = await crud_users.user_stats(session, current_user.id)
    return envelope({'user': UserOut.model_validate(current_user), 'stats': stats})


@router.put('/change-password')
async def change_password(
    payload: ChangePasswordIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_users.change_password(session, current_user, payload.current_password, payload.new_password)
    return envelope(message='Password changed successfully')


@router.post('/forgot-password')
async def forgot_password(payload: ForgotPasswordIn, session: AsyncSession = Depends(get_session)):
    token = await crud_users.start_password_reset(session, payload.email)
    data = None
    if token and not config.IS_PRODUCTION:
        # no mail delivery: outside production the token is handed back directly
        data = {'reset_token': token}
    return envelope(data, RESET_SENT)


@router.post('/reset-password')
async def reset_password(payload: ResetPasswordIn, session: AsyncSession = Depends(get_session)):
    await crud_users.reset_password(session, payload.token, payload.new_password)
    return envelope(message='Password reset successfully')


@router.post('/logout')
async def logout(response: Response, current_user: User = Depends(get_current_user)):
    response.delete_cookie(TOKEN_COOKIE)
    return envelope(message='Logged out successfully')
