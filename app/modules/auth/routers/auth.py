from fastapi import APIRouter, Depends
from app.modules.auth.schemas.actor import Actor
from app.modules.auth.utils.dependencies import get_current_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/me", response_model=Actor)
def me(current_user: Actor = Depends(get_current_user)):
    return current_user
