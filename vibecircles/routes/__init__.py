from fastapi import APIRouter
from .auth import router as auth_router
from .users import router as users_router
from .relationships import router as relationships_router
from .follows import router as follows_router
from .posts import router as posts_router
from .comments import router as comments_router
from .groups import router as groups_router
from .notifications import router as notifications_router
from .upload import router as upload_router

router = APIRouter()
router.include_router(auth_router, prefix='/auth', tags=['auth'])
router.include_router(users_router, prefix='/users', tags=['users'])
router.include_router(relationships_router, prefix='/relationships', tags=['relationships'])
router.include_router(follows_router, prefix='/follows', tags=['follows'])
router.include_router(posts_router, prefix='/posts', tags=['posts'])
router.include_router(comments_router, prefix='/comments', tags=['comments'])
router.include_router(groups_router, prefix='/groups', tags=['groups'])
router.include_router(notifications_router, prefix='/notifications', tags=['notifications'])
router.include_router(upload_router, prefix='/upload', tags=['upload'])
