"""
口座管理サービスのテスト
"""

import uuid

from src.services.account_service import AccountService


class TestAccountService:
    """AccountServiceのテスト"""

    def test_create_account(self, test_db):
        result = AccountService(test_db).create_account(name="taro", email="taro@example.com", initial_balance=25000)

        assert result["name"] == "taro"
        assert result["initial_balance"] == 25000.0
        assert result["current_balance"] == 25000.0
        assert result["total_trades"] == 0
        uuid.UUID(result["user_id"])

    def test_create_account_with_default_balance(self, test_db):
        result = AccountService(test_db, default_initial_balance=20000).create_account(name="hanako")
        assert result["initial_balance"] == 20000.0

    def test_duplicate_email(self, test_db, sample_user):
        result = AccountService(test_db).create_account(email=sample_user.email)
        assert result == {"error": "Email already registered"}

    def test_account_info_includes_trades(self, test_db, sample_user, make_trade):
        make_trade(sample_user, 500)
        make_trade(sample_user, -200)

        info = AccountService(test_db).get_account_info(sample_user.id)
        assert info["net_profit_loss"] == 300.0
        assert info["current_balance"] == 10300.0
        assert info["total_trades"] == 2

    def test_unknown_user(self, test_db):
        assert AccountService(test_db).get_account_info(uuid.uuid4()) == {"error": "User not found"}

    def test_set_initial_balance(self, test_db, sample_user):
        info = AccountService(test_db).set_initial_balance(sample_user.id, 50000)
        assert info["initial_balance"] == 50000.0

    def test_set_non_positive_initial_balance(self, test_db, sample_user):
        result = AccountService(test_db).set_initial_balance(sample_user.id, 0)
        assert result == {"error": "Initial balance must be positive"}
