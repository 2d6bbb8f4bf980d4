"""
テスト用フィクスチャ

pytestで使用するテスト用のフィクスチャを定義する。
SQLiteのインメモリDBを使用してテストを実行する。
"""

import pytest
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.sqlite import base as sqlite_base

from src.utils.database import Base, get_db
from src.models.user import User
from src.models.trade_entry import TradeEntry


# SQLite用にUUID型をVARCHAR(36)としてレンダリング
def visit_uuid(self, type_, **kw):
    return "VARCHAR(36)"


# UUID型のカスタムコンパイラを登録
sqlite_base.SQLiteTypeCompiler.visit_UUID = visit_uuid


# テストデータの基準時刻
BASE_TIME = datetime(2024, 1, 15, 9, 0, 0)


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def test_engine():
    """テスト用のSQLiteインメモリエンジンを作成"""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def test_db(test_engine):
    """テスト用のDBセッションを作成"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sample_user(test_db):
    """テスト用のユーザー（初期資金10,000）を作成"""
    user = User(
        id=uuid.uuid4(),
        name="tester",
        email="tester@example.com",
        initial_balance=Decimal("10000"),
    )
    test_db.add(user)
    test_db.commit()
    return user


@pytest.fixture
def other_user(test_db):
    """別ユーザーを作成"""
    user = User(id=uuid.uuid4(), name="other", initial_balance=Decimal("5000"))
    test_db.add(user)
    test_db.commit()
    return user


@pytest.fixture
def make_trade(test_db):
    """
    トレードを直接DBに登録するヘルパー

    created_at を明示しない場合は BASE_TIME から1時間ずつずらして採番する。
    """
    counter = {"n": 0}

    def _make(user, profit_loss, **kwargs):
        counter["n"] += 1
        created_at = kwargs.pop("created_at", BASE_TIME + timedelta(hours=counter["n"]))
        entry_date = kwargs.pop("entry_date", created_at - timedelta(hours=1))
        trade = TradeEntry(
            id=uuid.uuid4(),
            user_id=user.id,
            instrument_type=kwargs.pop("instrument_type", "FOREX"),
            instrument_name=kwargs.pop("instrument_name", "USDJPY"),
            direction=kwargs.pop("direction", "LONG"),
            entry_price=Decimal("150.00"),
            exit_price=Decimal("151.00"),
            quantity=Decimal("1"),
            position_size=Decimal("1"),
            profit_loss=Decimal(str(profit_loss)),
            profit_loss_percentage=kwargs.pop("profit_loss_percentage", Decimal("0")),
            entry_date=entry_date,
            exit_date=kwargs.pop("exit_date", created_at),
            trade_date=kwargs.pop("trade_date", entry_date),
            notes=kwargs.pop("notes", ""),
            tags=kwargs.pop("tags", []),
            created_at=created_at,
            updated_at=created_at,
            **kwargs,
        )
        test_db.add(trade)
        test_db.commit()
        return trade

    return _make


@pytest.fixture
def client(test_db):
    """FastAPI TestClientを作成（テスト用AppでDB依存性をオーバーライド）"""
    from src.routes import account, trades, metrics

    # テスト用のFastAPIアプリ（lifespanなしでPostgreSQL接続を回避）
    test_app = FastAPI()
    test_app.include_router(account.router, prefix="/api/v1/account", tags=["Account"])
    test_app.include_router(trades.router, prefix="/api/v1/trades", tags=["Trades"])
    test_app.include_router(metrics.router, prefix="/api/v1/metrics", tags=["Metrics"])

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    test_app.dependency_overrides[get_db] = override_get_db
    with TestClient(test_app) as c:
        yield c
    test_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(sample_user):
    """sample_user としてリクエストするヘッダー"""
    return {"X-User-Id": str(sample_user.id)}
