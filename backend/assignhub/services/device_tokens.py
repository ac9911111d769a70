from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from assignhub.core.errors import InvalidSpec
from assignhub.models.device_token import DeviceToken


def clean_token(value: object) -> str:
    return str(value or "").strip()


class DeviceTokenStore:
    def register(self, db: Session, user_id: int, token: str) -> DeviceToken:
        token = clean_token(token)
        if not token:
            raise InvalidSpec("Token obrigatório")
        existing = db.execute(select(DeviceToken).where(DeviceToken.token == token)).scalar_one_or_none()
        if existing:
            # o aparelho trocou de usuario
            if existing.user_id != user_id:
                existing.user_id = user_id
                db.flush()
            return existing
        device = DeviceToken(user_id=user_id, token=token)
        db.add(device)
        db.flush()
        return device

    def remove(self, db: Session, user_id: int, token: str) -> int:
        result = db.execute(
            delete(DeviceToken)
            .where(DeviceToken.user_id == user_id, DeviceToken.token == clean_token(token))
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def tokens_for_users(self, db: Session, user_ids: Iterable[int]) -> list[str]:
        ids = list(user_ids)
        if not ids:
            return []
        rows = db.execute(
            select(DeviceToken.token).where(DeviceToken.user_id.in_(ids)).order_by(DeviceToken.id.asc())
        ).scalars().all()
        return list(rows)

    def prune(self, db: Session, tokens: Iterable[str]) -> int:
        values = [clean_token(token) for token in tokens if clean_token(token)]
        if not values:
            return 0
        result = db.execute(
            delete(DeviceToken)
            .where(DeviceToken.token.in_(values))
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)
