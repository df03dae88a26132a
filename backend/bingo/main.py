from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from bingo import db
from bingo.models import User

main = Blueprint('main', __name__)

MAX_NAME_LENGTH = 64


def _clean_name(value):
    return (value or '').strip()[:MAX_NAME_LENGTH]


@main.route('/me', methods=['GET'])
def me():
    """Current user, or null when nobody is logged in."""
    if not current_user.is_authenticated:
        return jsonify({'user': None})
    return jsonify({'user': current_user.to_dict()})


@main.route('/me', methods=['PATCH'])
@login_required
def rename():
    data = request.get_json(silent=True) or {}
    name = _clean_name(data.get('display_name'))
    if not name:
        return jsonify({'error': 'Display name is required'}), 400
    current_user.display_name = name
    db.session.commit()
    return jsonify({'user': current_user.to_dict()})


@main.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = _clean_name(data.get('username'))
    password = data.get('password')
    if not username or not password:
        return jsonify({'error': 'Missing username or password'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(
        username=username,
        display_name=_clean_name(data.get('display_name')) or username,
        email=data.get('email'),
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)
    current_app.logger.info(f"[register] user={user.id}")
    return jsonify({'user': user.to_dict()}), 201


@main.route('/guest', methods=['POST'])
def guest():
    """Create a name-only account and log it in."""
    data = request.get_json(silent=True) or {}
    name = _clean_name(data.get('display_name'))
    if not name:
        return jsonify({'error': 'Display name is required'}), 400
    user = User(display_name=name)
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)
    current_app.logger.info(f"[guest] user={user.id}")
    return jsonify({'user': user.to_dict()}), 201


@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password'}), 401


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})
