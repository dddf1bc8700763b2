# Overview: Flask extension instances for database, migrations and mutation events.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .events import EventPublisher

db = SQLAlchemy()
migrate = Migrate()
events = EventPublisher()
