"""
リクエストユーザーの解決

X-User-Id ヘッダーのユーザーIDから口座を取得する。
認証方式そのものは前段（ゲートウェイ等）に委ねる。
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from src.models.user import User
from src.services.journal_store import as_uuid
from src.utils.database import get_db


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """リクエストユーザーを取得する（ヘッダーがない・ユーザーが存在しない場合は401）"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")

    try:
        user_id = as_uuid(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user
