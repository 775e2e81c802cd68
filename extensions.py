# extensions.py

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

# Instancias compartidas; se enlazan a la app en create_app()
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
