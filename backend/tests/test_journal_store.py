"""
口座・トレード履歴ストアのテスト
"""

import uuid
import pytest
from datetime import timedelta
from decimal import Decimal

from src.models.user import User
from src.services.journal_store import AccountStore, TradeStore, as_uuid


class TestAsUuid:
    """as_uuid関数のテスト"""

    def test_accepts_uuid_and_string(self):
        value = uuid.uuid4()
        assert as_uuid(value) is value
        assert as_uuid(str(value)) == value

    def test_invalid_string_raises(self):
        with pytest.raises(ValueError):
            as_uuid("not-a-uuid")


class TestAccountStore:
    """AccountStoreのテスト"""

    def test_get_returns_initial_balance(self, test_db, sample_user):
        account = AccountStore(test_db).get(sample_user.id)
        assert account == {"initial_balance": Decimal("10000")}

    def test_get_unset_initial_balance(self, test_db):
        user = User(id=uuid.uuid4(), name="no-balance")
        test_db.add(user)
        test_db.commit()

        assert AccountStore(test_db).get(str(user.id)) == {"initial_balance": None}

    def test_get_unknown_user_returns_none(self, test_db):
        assert AccountStore(test_db).get(uuid.uuid4()) is None


class TestTradeStore:
    """TradeStoreのテスト"""

    def test_list_by_user_orders_by_created_at(self, test_db, sample_user, make_trade, base_time):
        """登録順ではなく作成日時の昇順で返す"""
        make_trade(sample_user, 300, created_at=base_time + timedelta(hours=3))
        make_trade(sample_user, 100, created_at=base_time + timedelta(hours=1))
        make_trade(sample_user, 200, created_at=base_time + timedelta(hours=2))

        trades = TradeStore(test_db).list_by_user(sample_user.id)
        assert [float(t["profit_loss"]) for t in trades] == [100.0, 200.0, 300.0]
        assert [t["created_at"] for t in trades] == sorted(t["created_at"] for t in trades)

    def test_list_by_user_excludes_other_users(self, test_db, sample_user, other_user, make_trade):
        make_trade(sample_user, 100)
        make_trade(other_user, -999)

        trades = TradeStore(test_db).list_by_user(str(sample_user.id))
        assert [float(t["profit_loss"]) for t in trades] == [100.0]

    def test_list_by_user_created_before(self, test_db, sample_user, make_trade, base_time):
        """created_before より前に作成されたトレードのみ（同時刻は含まない）"""
        make_trade(sample_user, 100, created_at=base_time)
        target = make_trade(sample_user, 200, created_at=base_time + timedelta(minutes=1))
        make_trade(sample_user, 300, created_at=base_time + timedelta(minutes=2))

        trades = TradeStore(test_db).list_by_user(sample_user.id, created_before=target.created_at)
        assert [float(t["profit_loss"]) for t in trades] == [100.0]

    def test_list_by_user_empty(self, test_db, sample_user):
        assert TradeStore(test_db).list_by_user(sample_user.id) == []
