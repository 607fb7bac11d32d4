# Overview: Flask extension instances for database, migrations, and the notification dispatcher.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.dispatcher import NotificationDispatcher

db = SQLAlchemy()
migrate = Migrate()
dispatcher = NotificationDispatcher()
