from flask import Blueprint, jsonify, request
from flask_login import login_required

from .. import content
from ..uploads import save_upload
from ..utils import parse_bool

articles_bp = Blueprint('articles', __name__)


def _language_arg():
    return (request.args.get('language') or '').strip().lower() or None


@articles_bp.route('', methods=['GET'])
def list_articles():
    published = parse_bool(request.args.get('published'))
    return jsonify(content.list_articles(language=_language_arg(), published=published))


@articles_bp.route('/<int:article_id>', methods=['GET'])
def get_article(article_id):
    include_all = bool(parse_bool(request.args.get('admin'), default=False))
    return jsonify(content.get_article(article_id, _language_arg(), include_all_languages=include_all))


@articles_bp.route('', methods=['POST'])
@login_required
def create_article():
    return jsonify(content.create_article(request.get_json(silent=True))), 201


@articles_bp.route('/<int:article_id>', methods=['PUT'])
@login_required
def update_article(article_id):
    return jsonify(content.update_article(article_id, request.get_json(silent=True)))


@articles_bp.route('/<int:article_id>', methods=['DELETE'])
@login_required
def delete_article(article_id):
    content.delete_article(article_id)
    return jsonify({'message': 'Article deleted successfully'})


@articles_bp.route('/upload', methods=['POST'])
@login_required
def upload_file():
    return jsonify(save_upload(request.files.get('file')))
