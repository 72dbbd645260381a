import pytest

from backend.app.core.errors import InvalidArgument, NotFound, PermissionDenied
from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.directory import (
    DEFAULT_COMMISSION_RATE,
    create_dealership,
    create_user,
    delete_dealership,
    delete_user,
    goal_id,
    set_goal,
)


def test_goal_types_for_same_entity_and_month_coexist():
    set_goal("sp-1", "2024-06", "profit", 10000)
    set_goal("sp-1", "2024-06", "salesCount", 4)

    with session_scope() as session:
        goals = {goal.id: float(goal.target) for goal in session.query(models.Goal).all()}

    assert goals == {"2024-06-sp-1-profit": 10000.0, "2024-06-sp-1-salesCount": 4.0}


def test_set_goal_overwrites_same_type():
    set_goal("d-1", "2024-06", "profit", 10000)
    goal = set_goal("d-1", "2024-06", "profit", 15000)

    assert goal["id"] == goal_id("2024-06", "d-1", "profit")
    assert goal["target"] == 15000.0
    with session_scope() as session:
        assert session.query(models.Goal).count() == 1


@pytest.mark.parametrize(
    "entity_id, month, goal_type, target",
    [
        ("", "2024-06", "profit", 1),
        ("d-1", "2024-13", "profit", 1),
        ("d-1", "June", "profit", 1),
        ("d-1", "2024-06", "revenue", 1),
        ("d-1", "2024-06", "profit", -5),
        ("d-1", "2024-06", "profit", "lots"),
    ],
)
def test_set_goal_validation(entity_id, month, goal_type, target):
    with pytest.raises(InvalidArgument):
        set_goal(entity_id, month, goal_type, target)


def test_salesperson_defaults_commission_rate():
    create_dealership("Cuyo Cars", "Mendoza", "Mendoza", dealership_id="d-cuyo")

    user = create_user("sp_cuyo", "Carla", "Salesperson", dealership_id="d-cuyo")

    assert user["commission_rate"] == float(DEFAULT_COMMISSION_RATE)


def test_dealership_bound_roles_need_a_dealership():
    with pytest.raises(InvalidArgument):
        create_user("admin_x", "Admin X", "DealershipAdmin")
    with pytest.raises(InvalidArgument):
        create_user("who", "Who", "Janitor")

    factory = create_user("factory", "Factory", "Factory")
    assert factory["dealership_id"] is None
    assert factory["commission_rate"] is None


def test_create_dealership_places_missing_coords_in_layout():
    dealership = create_dealership("Patagonia Sur", "Comodoro Rivadavia", "Chubut")

    assert 0 <= dealership["coords"]["x"] <= 1000
    assert 0 <= dealership["coords"]["y"] <= 600


def test_admin_removes_only_own_salespeople(network):
    with pytest.raises(PermissionDenied):
        delete_user("admin-north", "sp-sol")
    with pytest.raises(PermissionDenied):
        delete_user("admin-north", "admin-sol")
    with pytest.raises(PermissionDenied):
        delete_user("sp-north", "sp-north")

    assert delete_user("admin-north", "sp-north") == {"deleted": "sp-north"}
    assert delete_user("factory-1", "admin-sol") == {"deleted": "admin-sol"}
    with session_scope() as session:
        assert session.get(models.User, "sp-north") is None
        assert session.get(models.User, "admin-sol") is None

    with pytest.raises(NotFound):
        delete_user("factory-1", "sp-north")


def test_only_factory_removes_dealerships(network):
    with pytest.raises(PermissionDenied):
        delete_dealership("admin-north", "d-north")
    with pytest.raises(NotFound):
        delete_dealership("factory-1", "d-missing")

    delete_dealership("factory-1", "d-north")

    with session_scope() as session:
        assert session.get(models.Dealership, "d-north") is None
        # Users of the removed dealership stay; joins drop their sales.
        assert session.get(models.User, "admin-north") is not None
