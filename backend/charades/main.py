from flask import Blueprint, request, jsonify
from .models import db, Player, Lobby, LobbyPlayer, LOBBY_FINISHED
from flask_login import login_user, logout_user, login_required, current_user

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Silent Cinema server!'})


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json() or {}
    player = Player.query.filter_by(nickname=data.get('nickname')).first()
    if not player:
        return jsonify({"success": False, "error": "not_found"}), 404
    if not player.check_pin(data.get('pin', '')):
        return jsonify({"success": False, "error": "invalid_pin"}), 401
    login_user(player, remember=True)
    return jsonify({"success": True, "user": player.to_dict()})


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json() or {}
    nickname = (data.get('nickname') or '').strip()
    pin = str(data.get('pin') or '')
    if not nickname or not pin:
        return jsonify({"success": False, "error": "Nickname and PIN are required"}), 400
    if Player.query.filter_by(nickname=nickname).first():
        return jsonify({"success": False, "error": "nickname_taken"}), 400

    new_player = Player(nickname=nickname)
    new_player.set_pin(pin)
    db.session.add(new_player)
    db.session.commit()
    login_user(new_player, remember=True)
    return jsonify({"success": True, "user": new_player.to_dict()}), 201


@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({"success": True, "user": current_user.to_dict()})

    return protected_check()


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@main.route('/lobbies/active')
@login_required
def get_active_lobbies():
    # Lobbies the current player belongs to that are still open
    lobbies = (
        Lobby.query.join(LobbyPlayer)
        .filter(LobbyPlayer.player_id == current_user.id, Lobby.status != LOBBY_FINISHED)
        .all()
    )
    return jsonify([{'code': lb.code, 'status': lb.status, 'host_id': str(lb.host_id)} for lb in lobbies])
