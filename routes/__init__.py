from .access import access_bp
from .organization import org_bp
from .profiles import profiles_bp
from .subscription import subscription_bp
from .properties import properties_bp
from .tasks import tasks_bp

def register_blueprints(app):
    app.register_blueprint(access_bp)
    app.register_blueprint(org_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(properties_bp)
    app.register_blueprint(tasks_bp)
