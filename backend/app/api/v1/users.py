"""User listing routes"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.user import UserResponse
from app.services.credential_store import CredentialStore
from app.api.deps import require_permissions

router = APIRouter()


@router.get(
    "/",
    response_model=List[UserResponse],
    dependencies=[Depends(require_permissions("users:read"))],
)
def list_users(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """
    List users (requires users:read)

    Returns:
        Users without password or reset-token fields
    """
    accounts = CredentialStore(db).list_users(limit=limit, offset=offset)
    return [UserResponse.model_validate(account) for account in accounts]
