from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.models.user_model import User

router = APIRouter(prefix="/users", tags=["Users"])


# 🔍 Who am I
@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    return {"success": True, "user": user.model_dump()}
