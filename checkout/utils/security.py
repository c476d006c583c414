"""
Checkout - Utilitários de Segurança
"""

import hashlib
import hmac
from datetime import datetime, timedelta
from typing import Optional, Union

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from checkout.config import settings
from checkout.exceptions import SignatureMismatch

# Security scheme
security = HTTPBearer()


# =====================================================
# ASSINATURA DE WEBHOOK (HMAC-SHA256)
# =====================================================

def sign_payload(body: Union[bytes, str], secret: Optional[str] = None) -> str:
    """Assinatura hexadecimal HMAC-SHA256 do corpo bruto"""
    if isinstance(body, str):
        body = body.encode("utf-8")
    key = (secret or settings.WEBHOOK_SECRET).encode("utf-8")
    return hmac.new(key, body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> None:
    """Levanta SignatureMismatch se a assinatura estiver ausente ou não conferir"""
    if not signature:
        raise SignatureMismatch("Assinatura do webhook ausente")

    expected = sign_payload(body, secret)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise SignatureMismatch("Assinatura do webhook inválida")


# =====================================================
# JWT
# =====================================================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Cria token de acesso JWT"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode["exp"] = expire

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def decode_token(token: str) -> dict:
    """Decodifica e valida token JWT"""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido ou expirado",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_owner(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Obtém a referência do dono (claim `sub`) a partir do token"""
    payload = decode_token(credentials.credentials)

    owner_id = payload.get("sub")
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return owner_id
