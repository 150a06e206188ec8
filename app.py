from flask import Flask
from flask_login import LoginManager
from flask_migrate import Migrate

from config import Config
from models import db, User
from routes import register_blueprints
from services.cache_helpers import PermissionCache
from services.email_service import mail


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    Migrate(app, db)

    login_manager = LoginManager()
    login_manager.init_app(app)

    # Initialize Flask-Mail
    mail.init_app(app)

    # One permission cache per application; writes invalidate it explicitly
    app.extensions['permission_cache'] = PermissionCache(ttl=app.config['PERMISSION_CACHE_TTL'])

    @login_manager.user_loader
    def load_user(user_id):
        user = db.session.get(User, int(user_id))
        if user is None or not user.is_active:
            return None
        return user

    register_blueprints(app)

    return app


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', port=5005, debug=True)
