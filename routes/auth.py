from flask import Blueprint, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user

from models import db
from models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login_post():
    data = request.get_json(silent=True) or request.form
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = db.session.query(User).filter(User.email == email, User.is_active == True).first()
    if not user or not user.check_password(password):
        return jsonify({"ok": False, "error": "Credenciales inválidas"}), 401

    login_user(user)
    return jsonify({"ok": True, "user": {"id": user.id, "full_name": user.full_name, "role": user.role}})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    session.clear()
    return jsonify({"ok": True})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify({"id": current_user.id, "full_name": current_user.full_name, "role": current_user.role})
