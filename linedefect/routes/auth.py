"""Authentication routes and session helpers."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request, session
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Principal, Role, User, Zone, validate_role_assignment


auth_bp = Blueprint("auth", __name__)


def get_current_user() -> User | None:
    """Return the currently authenticated user, if any."""

    user_id = session.get("user_id")
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def get_current_principal() -> Principal | None:
    """Return the acting principal rebuilt from the stored role assignment.

    Only the user id is read from the session; role and zone always come from
    the ``users`` table.
    """

    user = get_current_user()
    return user.principal if user else None


def _form_data() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


@auth_bp.post("/register")
def register() -> Any:
    """Create an account with its role (and zone, for group leaders)."""

    data = _form_data()
    name = str(data.get("name") or "").strip()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    role_value = data.get("role")
    zone_value = data.get("zone") or None

    errors: dict[str, str] = {}
    if not name:
        errors["name"] = "Full name is required"
    if not email:
        errors["email"] = "Email is required"
    if not password:
        errors["password"] = "Password is required"

    role: Role | None = None
    try:
        role = Role(role_value)
    except ValueError:
        errors["role"] = "Select a valid role"

    zone: Zone | None = None
    if zone_value is not None:
        try:
            zone = Zone(zone_value)
        except ValueError:
            errors["zone"] = "Select a valid zone"

    if role is not None and "zone" not in errors:
        try:
            zone = validate_role_assignment(role, zone)
        except ValueError as exc:
            errors["zone"] = str(exc)

    if errors:
        return jsonify({"error": "Sign up failed", "errors": errors}), 422

    if User.query.filter_by(email=email).first() is not None:
        return jsonify({"error": "A user with that email already exists."}), 409

    user = User(email=email, name=name, role=role.value, zone=zone.value if zone else None)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Concurrent sign up rejected for %s", email)
        return jsonify({"error": "A user with that email already exists."}), 409

    session.clear()
    session["user_id"] = user.id
    current_app.logger.info("Account %s created as %s", user.email, user.role)
    return jsonify({"message": "Account created", "user": user.to_dict()}), 201


@auth_bp.post("/login")
def login() -> Any:
    data = _form_data()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(password):
        current_app.logger.warning("Failed login for %s", email or "<blank>")
        return jsonify({"error": "Invalid email or password."}), 401

    session.clear()
    session["user_id"] = user.id
    return jsonify({"message": "Logged in successfully.", "user": user.to_dict()})


@auth_bp.post("/logout")
def logout() -> Any:
    """Log the user out."""

    session.clear()
    return jsonify({"message": "You have been logged out."})


@auth_bp.get("/me")
def me() -> Any:
    user = get_current_user()
    if user is None:
        return jsonify({"error": "Authentication required"}), 401
    return jsonify({"user": user.to_dict()})
