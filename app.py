import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix

# Configure logging
logging.basicConfig(level=logging.DEBUG)

class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)

# Create the app
app = Flask(__name__)
app.secret_key = os.environ.get("SESSION_SECRET", "dev-secret-key-change-in-production")
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

# Configure upload folder
app.config['UPLOAD_FOLDER'] = os.environ.get("UPLOAD_FOLDER", "static/uploads")
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max file size

# Resolution responses further than this from the reported location are refused
app.config['RESOLUTION_MATCH_THRESHOLD_M'] = float(os.environ.get("RESOLUTION_MATCH_THRESHOLD_M", 50))

# Configure the database
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///samadhan.db")
app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
    "pool_recycle": 300,
    "pool_pre_ping": True,
}

# Initialize the app with the extension
db.init_app(app)

# Import routes after app creation to avoid circular imports
from routes import *


def seed_super_admin():
    """Create the first super admin from the environment if none exists"""
    import models

    admin_email = os.environ.get("SUPER_ADMIN_EMAIL")
    admin_password = os.environ.get("SUPER_ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        return None
    if models.Profile.query.filter_by(user_type='super_admin').count() > 0:
        return None

    admin = models.Profile(
        email=admin_email.lower(),
        full_name=os.environ.get("SUPER_ADMIN_NAME", "Samadhan Administrator"),
        user_type='super_admin',
        organization='Samadhan Administration',
        approval_status='approved',
    )
    admin.set_password(admin_password)
    db.session.add(admin)
    db.session.commit()
    logging.info(f"Super admin created: {admin.email}")
    return admin


with app.app_context():
    # Import models to ensure tables are created
    import models
    db.create_all()
    seed_super_admin()
