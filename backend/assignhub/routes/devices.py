from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assignhub.core.auth import get_current_user
from assignhub.core.errors import TaskCoreError
from assignhub.core.permissions import Actor
from assignhub.database.deps import get_db
from assignhub.routes.errors import to_http_exception
from assignhub.schemas.notification import DeviceTokenIn
from assignhub.services.device_tokens import DeviceTokenStore

router = APIRouter(prefix="/devices", tags=["Devices"])
tokens = DeviceTokenStore()


@router.post("/token")
def save_token(
    payload: DeviceTokenIn,
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_user),
):
    try:
        tokens.register(db, current_user.user_id, payload.token)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    return {"detail": "Token salvo"}


@router.delete("/token")
def remove_token(
    payload: DeviceTokenIn,
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_user),
):
    tokens.remove(db, current_user.user_id, payload.token)
    db.commit()
    return {"detail": "Token removido"}
