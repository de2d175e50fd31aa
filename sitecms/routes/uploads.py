import os

from flask import Blueprint, abort, current_app, send_from_directory

from ..uploads import IMAGE_EXTENSIONS, safe_upload_path

uploads_bp = Blueprint('uploads', __name__)


@uploads_bp.route('/<filename>', methods=['GET'])
def uploaded_file(filename):
    safe_filename, full_path = safe_upload_path(filename)
    if not safe_filename or not full_path or not os.path.exists(full_path):
        abort(404)
    response = send_from_directory(current_app.config['UPLOAD_FOLDER'], safe_filename, conditional=True, etag=True)
    extension = safe_filename.rsplit('.', 1)[1].lower() if '.' in safe_filename else ''
    if extension not in IMAGE_EXTENSIONS:
        response.headers['Content-Disposition'] = f'attachment; filename="{safe_filename}"'
    return response
