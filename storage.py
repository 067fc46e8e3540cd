import os
import uuid
import logging
from flask import current_app, url_for
from werkzeug.utils import secure_filename
from PIL import Image

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif'}
MAX_IMAGE_SIZE = (1024, 1024)


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def save_photo(file):
    """Store an uploaded photo and return (public url, stored filename)"""
    filename = secure_filename(f"{uuid.uuid4().hex}_{file.filename}")
    upload_folder = current_app.config['UPLOAD_FOLDER']
    filepath = os.path.join(upload_folder, filename)

    # Ensure upload directory exists
    os.makedirs(upload_folder, exist_ok=True)

    # Save and resize image
    file.save(filepath)
    try:
        with Image.open(filepath) as img:
            if img.width > MAX_IMAGE_SIZE[0] or img.height > MAX_IMAGE_SIZE[1]:
                img.thumbnail(MAX_IMAGE_SIZE, Image.Resampling.LANCZOS)
                img.save(filepath, optimize=True, quality=85)
    except (OSError, ValueError) as e:
        logging.error(f"Error processing image {filename}: {e}")

    return url_for('uploaded_file', filename=filename), filename


def delete_photo(filename):
    if not filename:
        return
    filepath = os.path.join(current_app.config['UPLOAD_FOLDER'], filename)
    if os.path.exists(filepath):
        os.remove(filepath)
