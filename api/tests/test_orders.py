import pytest

from realsingles import repo
from realsingles.services.orders import OrderRejected, check_redeemable, parse_order_request

USER_ID = "00000000-0000-0000-0000-0000000000aa"
PRODUCT_ID = "00000000-0000-0000-0000-0000000000bb"


class _Result:
    def __init__(self, row=None):
        self._row = row

    def mappings(self):
        return self

    def first(self):
        return self._row

    def all(self):
        return [self._row] if self._row else []


class FakeOrderSession:
    """Just enough of a session to drive the redemption transaction."""

    def __init__(self, balance: int, product: dict | None, steal_points: bool = False):
        self.balance = balance
        self.product = product
        self.steal_points = steal_points
        self.calls: list[tuple[str, dict]] = []
        self.committed = False
        self.rolled_back = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, stmt, params=None):
        sql = str(stmt)
        params = params or {}
        self.calls.append((sql, params))
        if "FROM product" in sql:
            return _Result(self.product)
        if "SELECT points_balance FROM user_account" in sql:
            return _Result({"points_balance": self.balance})
        if "INSERT INTO redemption_order" in sql:
            return _Result({"id": "11111111-1111-1111-1111-111111111111", "created_at": None})
        if "UPDATE user_account" in sql:
            if self.steal_points or self.balance < params["cost"]:
                return _Result(None)
            self.balance -= params["cost"]
            return _Result({"points_balance": self.balance})
        if "UPDATE product SET stock_quantity" in sql:
            self.product["stock_quantity"] -= 1
            return _Result({"stock_quantity": self.product["stock_quantity"]})
        return _Result(None)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def sql_matching(self, needle: str) -> list[tuple[str, dict]]:
        return [c for c in self.calls if needle in c[0]]


def _product(**overrides):
    row = {"id": PRODUCT_ID, "name": "Mug", "points_cost": 200, "stock_quantity": 3, "is_active": True}
    row.update(overrides)
    return row


SHIPPING = {
    "shipping_name": "Ava",
    "shipping_address": "1 Main St",
    "shipping_city": "Austin",
    "shipping_state": "TX",
    "shipping_zip": "78701",
    "shipping_country": "US",
}


def test_parse_order_request_accepts_both_key_styles():
    req = parse_order_request({"productid": PRODUCT_ID, "ShippingName": "Ava", "shipping_city": "Austin"})
    assert req.product_id == PRODUCT_ID
    assert req.shipping["shipping_name"] == "Ava"
    assert req.shipping["shipping_city"] == "Austin"
    assert req.shipping["shipping_country"] == "US"

    with pytest.raises(OrderRejected) as exc:
        parse_order_request({"ShippingName": "Ava"})
    assert exc.value.status_code == 400


def test_check_redeemable_rules():
    assert check_redeemable(_product(), 200) == 200
    with pytest.raises(OrderRejected) as missing:
        check_redeemable(None, 1000)
    assert missing.value.status_code == 404
    with pytest.raises(OrderRejected) as inactive:
        check_redeemable(_product(is_active=False), 1000)
    assert inactive.value.status_code == 404
    with pytest.raises(OrderRejected, match="out of stock"):
        check_redeemable(_product(stock_quantity=0), 1000)
    with pytest.raises(OrderRejected, match="Insufficient points"):
        check_redeemable(_product(), 199)
    assert check_redeemable(_product(stock_quantity=None), 500) == 200


def test_successful_order_deducts_points_exactly_once(monkeypatch):
    session = FakeOrderSession(balance=500, product=_product())
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)

    result = repo.create_redemption_order(USER_ID, PRODUCT_ID, SHIPPING)

    assert result["points_spent"] == 200
    assert result["new_balance"] == 300
    assert session.balance == 300
    assert len(session.sql_matching("UPDATE user_account")) == 1

    ledger = session.sql_matching("INSERT INTO point_transaction")
    assert len(ledger) == 1
    assert ledger[0][1]["amount"] == -200
    assert ledger[0][1]["balance_after"] == 300
    assert session.product["stock_quantity"] == 2
    assert len(session.sql_matching("INSERT INTO analytics_event")) == 1
    assert session.committed is True


def test_insufficient_balance_never_deducts(monkeypatch):
    session = FakeOrderSession(balance=100, product=_product())
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)

    with pytest.raises(OrderRejected) as exc:
        repo.create_redemption_order(USER_ID, PRODUCT_ID, SHIPPING)

    assert exc.value.status_code == 400
    assert session.balance == 100
    assert session.sql_matching("UPDATE user_account") == []
    assert session.sql_matching("INSERT INTO redemption_order") == []
    assert session.committed is False


def test_concurrent_spend_rolls_back(monkeypatch):
    session = FakeOrderSession(balance=500, product=_product(), steal_points=True)
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)

    with pytest.raises(OrderRejected, match="Insufficient points"):
        repo.create_redemption_order(USER_ID, PRODUCT_ID, SHIPPING)

    assert session.rolled_back is True
    assert session.committed is False
    assert session.sql_matching("INSERT INTO point_transaction") == []


def test_unlimited_stock_is_not_decremented(monkeypatch):
    session = FakeOrderSession(balance=500, product=_product(stock_quantity=None))
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)

    repo.create_redemption_order(USER_ID, PRODUCT_ID, SHIPPING)

    assert session.sql_matching("UPDATE product SET stock_quantity") == []
    assert session.committed is True
