from flask import Blueprint, jsonify

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Lie Hard game server is running!'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok'})
