from flask import Blueprint, jsonify, request
from flask_login import login_required

from .. import content
from ..notifications import send_contact_message

contact_bp = Blueprint('contact', __name__)


@contact_bp.route('/send', methods=['POST'])
def send():
    send_contact_message(request.get_json(silent=True))
    return jsonify({'message': 'Message sent successfully'})


@contact_bp.route('/info', methods=['GET'])
def get_info():
    return jsonify(content.get_contact_info(request.args.get('language')))


@contact_bp.route('/info', methods=['PUT'])
@login_required
def update_info():
    return jsonify(content.update_contact_info(request.get_json(silent=True)))
