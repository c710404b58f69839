# rasuva/extensions.py
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# shared instances, bound to the app inside create_app()
db = SQLAlchemy()
migrate = Migrate()
