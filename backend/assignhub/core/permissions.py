from dataclasses import dataclass
from typing import Optional

from assignhub.core.config import ADMIN_ROLE


@dataclass(frozen=True)
class Actor:
    """Usuario autenticado pela camada externa; o nucleo confia nesses dados."""

    user_id: int
    role: str = "user"
    name: Optional[str] = None


def is_admin(actor: Optional[Actor]) -> bool:
    if not actor:
        return False
    return str(actor.role or "").strip() == ADMIN_ROLE
