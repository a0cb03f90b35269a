from dataclasses import dataclass

from fastapi import HTTPException, Request, status


@dataclass
class Principal:
    user_id: str


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return principal
