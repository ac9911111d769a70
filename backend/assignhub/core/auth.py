from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from assignhub.core.config import SECRET_KEY, ALGORITHM
from assignhub.core.permissions import Actor, is_admin
from assignhub.database.deps import get_db
from assignhub.models.user import User

# os tokens sao emitidos pelo servico de identidade; aqui so validamos
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=True)

def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciais inválidas",
        headers={"WWW-Authenticate": "Bearer"}
    )
    if not SECRET_KEY:
        raise credentials_exception
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except ValueError:
        raise credentials_exception
    if not user:
        raise credentials_exception
    return Actor(user_id=user.id, role=user.role, name=user.name)

def get_current_admin(current_user: Actor = Depends(get_current_user)) -> Actor:
    if not is_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado")
    return current_user
