"""
Flask extension singletons for the engine.

Kept apart from the factory so models, services and blueprints can import them
without circular imports. create_app() binds them to the app.

- db: Flask-SQLAlchemy, all persistence
- migrate: Flask-Migrate, `flask db ...` schema migrations
- login_manager: Flask-Login, identity from gateway headers (stateless, no session cookie)
- csrf: Flask-WTF CSRFProtect; the JSON blueprints are registered as exempt
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()

login_manager = LoginManager()
# identity is re-resolved from headers on every request
login_manager.session_protection = None

csrf = CSRFProtect()
