from typing import Annotated
from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core import schemas, models
from app.core.database import get_db
from app.core.security import verify_api_key, create_access_token

router = APIRouter(prefix="/auth", tags=["Authentication"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


def normalize_store_url(store_url: str) -> str:
    return store_url.strip().rstrip("/").lower()


@router.post(
    "/token", response_model=schemas.TokenResponse, status_code=status.HTTP_200_OK
)
async def issue_token(credentials: schemas.StoreTokenRequest, db: db_dep):
    query = select(models.Store).where(
        models.Store.store_url == normalize_store_url(credentials.store_url)
    )
    result = await db.execute(query)
    db_store = result.scalars().first()

    # Same answer for unknown stores and wrong keys
    if (
        not db_store
        or not db_store.is_active
        or not verify_api_key(credentials.api_key, db_store.api_key_hash)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid store credentials",
        )

    token = create_access_token({"store_id": str(db_store.id)})
    return {"access_token": token, "token_type": "bearer"}
