import uuid
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import Annotated
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import jwt

from app.core.database import get_db
from app.core import models
from app.core.config import settings
from app.ai_feature.schema_context import is_valid_uuid

db_dep = Annotated[AsyncSession, Depends(get_db)]
# Hash mechanism for store API keys
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_api_key(api_key: str):
    return pwd_context.hash(api_key)


def verify_api_key(plain_api_key, hashed_api_key):
    return pwd_context.verify(plain_api_key, hashed_api_key)


def create_access_token(data: dict):
    to_encode = data.copy()

    expire_time = datetime.now(timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"exp": expire_time})

    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )

    return encoded_jwt


def decode_store_id(token: str):
    """
    Return the store_id claim of a valid token, None otherwise.
    Expired, tampered and malformed tokens all end up as None.
    """
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except jwt.PyJWTError:
        return None

    store_id = payload.get("store_id")
    if not isinstance(store_id, str) or not is_valid_uuid(store_id):
        return None
    return store_id


# A store without a token gets one from here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


# Decode the token and load the store it was issued for
async def get_current_store(token: Annotated[str, Depends(oauth2_scheme)], db: db_dep):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    store_id = decode_store_id(token)
    if store_id is None:
        raise credentials_exception

    query = select(models.Store).where(
        models.Store.id == uuid.UUID(store_id), models.Store.is_active.is_(True)
    )
    result = await db.execute(query)
    store = result.scalars().first()

    if store is None:
        raise credentials_exception

    return store
