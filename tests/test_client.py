import pytest

from client import ApiError, GasDeliveryClient


@pytest.fixture
def api(client):
    return GasDeliveryClient(base_url="http://testserver", session=client)


def test_session_lifecycle(api, customer):
    api.login(customer.email, "secret123")
    assert api.is_authenticated
    assert api.verify_token()["id"] == customer.id

    old_token = api.token
    api.refresh_token()
    assert api.token != old_token

    api.logout()
    assert api.token is None
    assert not api.is_authenticated


def test_register_then_order_and_cancel(api, cylinder):
    api.register(
        email="mama.ntilie@example.com",
        password="secret123",
        firstName="Rehema",
        lastName="Kweka",
        phone="+255755555555",
    )

    assert [item["id"] for item in api.list_cylinders()] == [cylinder.id]

    created = api.create_order([{"cylinderId": cylinder.id, "quantity": 2}], "Sinza, Dar es Salaam", -6.78, 39.22)
    assert created["totalAmount"] == 100000

    history = api.my_orders()
    assert history["pagination"]["total"] == 1

    order_id = created["order"]["id"]
    assert api.get_order(order_id)["orderNumber"] == created["orderNumber"]
    assert api.cancel_order(order_id, reason="Found a closer shop")["status"] == "cancelled"


def test_errors_surface_as_api_error(api, customer):
    with pytest.raises(ApiError) as excinfo:
        api.login(customer.email, "wrong-password")

    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "Invalid credentials"
    assert api.token is None


def test_order_needs_a_session(api, cylinder):
    with pytest.raises(ApiError):
        api.create_order([{"cylinderId": cylinder.id, "quantity": 1}], "Sinza", -6.78, 39.22)


def test_logout_without_server_session_still_clears(api):
    api.token = "stale"
    api.user = {"id": "someone"}

    api.logout()

    assert api.token is None
    assert api.user is None
