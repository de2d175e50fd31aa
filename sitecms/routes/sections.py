from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from .. import content
from ..errors import Unauthorized
from ..uploads import save_upload
from ..utils import parse_bool

sections_bp = Blueprint('sections', __name__)


def _language_arg():
    return (request.args.get('language') or '').strip().lower() or None


def _admin_view():
    return bool(parse_bool(request.args.get('admin'), default=False))


@sections_bp.route('', methods=['GET'])
def list_sections():
    admin_view = _admin_view()
    if admin_view and not current_user.is_authenticated:
        raise Unauthorized()
    sections = content.list_sections(
        language=_language_arg(),
        section_type=(request.args.get('type') or '').strip() or None,
        include_unpublished=admin_view,
        include_all_languages=admin_view,
    )
    return jsonify(sections)


@sections_bp.route('/type/<section_type>', methods=['GET'])
def section_by_type(section_type):
    return jsonify(content.get_section_by_type(section_type, _language_arg()))


@sections_bp.route('/<int:section_id>', methods=['GET'])
def get_section(section_id):
    return jsonify(content.get_section(section_id, _language_arg(), include_all_languages=_admin_view()))


@sections_bp.route('', methods=['POST'])
@login_required
def create_section():
    return jsonify(content.create_section(request.get_json(silent=True))), 201


@sections_bp.route('/<int:section_id>', methods=['PUT'])
@login_required
def update_section(section_id):
    return jsonify(content.update_section(section_id, request.get_json(silent=True)))


@sections_bp.route('/<int:section_id>', methods=['DELETE'])
@login_required
def delete_section(section_id):
    content.delete_section(section_id)
    return jsonify({'message': 'Section deleted successfully'})


@sections_bp.route('/upload', methods=['POST'])
@login_required
def upload_file():
    return jsonify(save_upload(request.files.get('file')))
