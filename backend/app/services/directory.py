"""Dealerships, users and monthly goals."""

from __future__ import annotations

import logging
import random
import re
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from backend.app.core.errors import InvalidArgument, NotFound, PermissionDenied
from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.entities import (
    GOAL_TYPES,
    ROLE_DEALERSHIP_ADMIN,
    ROLE_FACTORY,
    ROLE_SALESPERSON,
    ROLES,
    DealershipRecord,
    GoalRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_RATE = Decimal("0.10")
LAYOUT_WIDTH = 1000
LAYOUT_HEIGHT = 600
MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def goal_id(month: str, entity_id: str, goal_type: str) -> str:
    """Goal key; includes the type so profit and salesCount goals never collide."""
    return f"{month}-{entity_id}-{goal_type}"


def create_dealership(
    name: str,
    city: str,
    province: str,
    coords: Optional[Dict[str, float]] = None,
    dealership_id: Optional[str] = None,
) -> Dict[str, Any]:
    if not name or not city or not province:
        raise InvalidArgument("name, city and province are required")
    coords = coords or {"x": random.random() * LAYOUT_WIDTH, "y": random.random() * LAYOUT_HEIGHT}
    with session_scope() as session:
        dealership = models.Dealership(
            id=dealership_id or uuid.uuid4().hex,
            name=name,
            city=city,
            province=province,
            coords=coords,
        )
        session.add(dealership)
        session.flush()
        return DealershipRecord.from_model(dealership).to_dict()


def create_user(
    username: str,
    name: str,
    role: str,
    dealership_id: Optional[str] = None,
    commission_rate: Optional[Any] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    if not username or not name:
        raise InvalidArgument("username and name are required")
    if role not in ROLES:
        raise InvalidArgument(f"Unknown role '{role}'")
    if role in {ROLE_DEALERSHIP_ADMIN, ROLE_SALESPERSON} and not dealership_id:
        raise InvalidArgument(f"{role} users must belong to a dealership")

    rate: Optional[Decimal] = None
    if role == ROLE_SALESPERSON:
        rate = Decimal(str(commission_rate)) if commission_rate is not None else DEFAULT_COMMISSION_RATE

    with session_scope() as session:
        user = models.User(
            id=user_id or uuid.uuid4().hex,
            username=username,
            name=name,
            role=role,
            dealership_id=dealership_id,
            commission_rate=rate,
        )
        session.add(user)
        session.flush()
        return UserRecord.from_model(user).to_dict()


def set_goal(entity_id: str, month: str, goal_type: str, target: Any) -> Dict[str, Any]:
    """Create or overwrite the goal for (entity, month, type)."""
    if not entity_id:
        raise InvalidArgument("entity_id is required")
    if not month or not MONTH_RE.match(month):
        raise InvalidArgument("month must be formatted YYYY-MM")
    if goal_type not in GOAL_TYPES:
        raise InvalidArgument(f"Unknown goal type '{goal_type}'")
    try:
        target_value = Decimal(str(target))
    except ArithmeticError as exc:
        raise InvalidArgument("target must be a number") from exc
    if target_value < 0:
        raise InvalidArgument("target must not be negative")

    key = goal_id(month, entity_id, goal_type)
    with session_scope() as session:
        goal = session.get(models.Goal, key)
        if goal is None:
            goal = models.Goal(id=key, entity_id=entity_id, type=goal_type, target=target_value, month=month)
            session.add(goal)
        else:
            goal.target = target_value
        session.flush()
        return GoalRecord.from_model(goal).to_dict()


def delete_user(caller_id: str, user_id: str) -> Dict[str, Any]:
    """Remove a user document.

    Factory users may remove anyone; a dealership admin only the salespeople of
    their own dealership. Sales made by the user stay stored and drop out of
    every joined view.
    """
    with session_scope() as session:
        caller = session.get(models.User, caller_id)
        if caller is None:
            raise PermissionDenied("Unknown caller.")
        user = session.get(models.User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        if caller.role != ROLE_FACTORY:
            manages = (
                caller.role == ROLE_DEALERSHIP_ADMIN
                and user.role == ROLE_SALESPERSON
                and user.dealership_id == caller.dealership_id
            )
            if not manages:
                raise PermissionDenied("You cannot remove this user.")
        session.delete(user)

    logger.info("User %s removed by %s", user_id, caller_id)
    return {"deleted": user_id}


def delete_dealership(caller_id: str, dealership_id: str) -> Dict[str, Any]:
    """Remove a dealership document (Factory only). Its vehicles, users and sales are left in place."""
    with session_scope() as session:
        caller = session.get(models.User, caller_id)
        if caller is None or caller.role != ROLE_FACTORY:
            raise PermissionDenied("Only factory users can remove dealerships.")
        dealership = session.get(models.Dealership, dealership_id)
        if dealership is None:
            raise NotFound(f"Dealership {dealership_id} not found.")
        session.delete(dealership)

    logger.info("Dealership %s removed by %s", dealership_id, caller_id)
    return {"deleted": dealership_id}
