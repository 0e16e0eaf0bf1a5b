from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clearview.auth import jwt_handler
from clearview.database import SessionLocal
from clearview.models.user import User
from clearview.scheduling.actors import ROLE_ADMIN, ROLE_CLIENT, Actor

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user is not None:
            db.expunge(user)
    finally:
        db.close()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    role = (current_user.role or ROLE_CLIENT).strip().lower()
    if role not in (ROLE_CLIENT, ROLE_ADMIN):
        raise HTTPException(status_code=403, detail="Unknown account role")
    return Actor(user_id=current_user.id, role=role)
