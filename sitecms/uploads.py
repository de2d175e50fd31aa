"""Validation and storage of uploaded images and PDF documents."""
import os
import uuid

from flask import current_app
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from .errors import PayloadTooLarge, UnsupportedMediaType, ValidationError
from .models import db, Media, MEDIA_TYPE_IMAGE, MEDIA_TYPE_PDF

IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
EXTENSION_MIME_TYPES = {
    'png': {'image/png'},
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'gif': {'image/gif'},
    'webp': {'image/webp'},
    'pdf': {'application/pdf'},
}
PDF_SIGNATURE = b'%PDF-'


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in current_app.config['ALLOWED_EXTENSIONS']


def safe_upload_path(stored_name):
    upload_root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    raw_name = (stored_name or '').strip()
    safe_name = secure_filename(raw_name)
    if not safe_name or safe_name != raw_name:
        return None, None
    full_path = os.path.abspath(os.path.join(upload_root, safe_name))
    try:
        if os.path.commonpath([upload_root, full_path]) != upload_root:
            return None, None
    except ValueError:
        return None, None
    return safe_name, full_path


def _storage_filename(original_name):
    """ASCII-safe name keeping the original extension; non-Latin stems get a generated one."""
    stem, extension = os.path.splitext(os.path.basename(original_name.replace('\\', '/')))
    extension = extension.lstrip('.').lower()
    if not extension or secure_filename(extension) != extension:
        return None
    safe_stem = secure_filename(stem)[:150] or uuid.uuid4().hex
    return f'{safe_stem}.{extension}'


def _stream_size(file):
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _verify_image(file):
    max_pixels = max(1, int(current_app.config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)))
    try:
        with Image.open(file.stream) as image:
            width, height = image.size
            if width < 1 or height < 1 or (width * height) > max_pixels:
                return False
            image.verify()
        return True
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
        return False
    finally:
        file.stream.seek(0)


def validate_uploaded_file(file):
    """Check an uploaded file and return ``(filename, extension, mime_type, size)``.

    Raises ValidationError when no file was sent, UnsupportedMediaType for a
    disallowed type or content that does not match it, and PayloadTooLarge
    over ``MAX_UPLOAD_BYTES``.
    """
    if not file or not file.filename:
        raise ValidationError('No file uploaded', fields=['file'])

    filename = _storage_filename(file.filename)
    if not filename or not allowed_file(filename):
        raise UnsupportedMediaType()

    extension = filename.rsplit('.', 1)[1].lower()
    mime_type = (file.mimetype or '').split(';', 1)[0].lower()
    allowed_mimes = current_app.config.get('ALLOWED_UPLOAD_MIME_TYPES', set())
    if (
        mime_type not in allowed_mimes
        or extension not in EXTENSION_MIME_TYPES
        or mime_type not in EXTENSION_MIME_TYPES[extension]
    ):
        raise UnsupportedMediaType()

    size = _stream_size(file)
    max_bytes = int(current_app.config['MAX_UPLOAD_BYTES'])
    if size > max_bytes:
        raise PayloadTooLarge(f'File is too large. Maximum size is {max_bytes // (1024 * 1024)}MB.')

    if extension == 'pdf':
        signature = file.stream.read(len(PDF_SIGNATURE))
        file.stream.seek(0)
        if signature != PDF_SIGNATURE:
            raise UnsupportedMediaType('File content does not match its type.')
    elif not _verify_image(file):
        raise UnsupportedMediaType('File content does not match its type.')
    return filename, extension, mime_type, size


def upload_url(stored_name):
    return f"{current_app.config['UPLOAD_URL_PREFIX'].rstrip('/')}/{stored_name}"


def save_upload(file):
    """Validate and store one upload, recording a Media row."""
    filename, extension, mime_type, size = validate_uploaded_file(file)
    unique_name = f"{uuid.uuid4().hex[:16]}_{filename}"
    os.makedirs(current_app.config['UPLOAD_FOLDER'], exist_ok=True)
    full_path = os.path.join(current_app.config['UPLOAD_FOLDER'], unique_name)
    file.save(full_path)

    media = Media(
        filename=filename,
        file_path=unique_name,
        type=MEDIA_TYPE_PDF if extension == 'pdf' else MEDIA_TYPE_IMAGE,
        file_size=size,
        mime_type=mime_type,
    )
    db.session.add(media)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        os.remove(full_path)
        raise
    current_app.logger.info('Stored upload %s (%s, %s bytes).', unique_name, mime_type, size)
    return {
        'url': upload_url(unique_name),
        'filename': unique_name,
        'originalName': filename,
        'mimetype': mime_type,
        'size': size,
        'media': media.to_dict(),
    }
