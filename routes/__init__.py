"""
TaskHive API Route Blueprints
"""
from .jobs import jobs_bp
from .workers import workers_bp
from .payments import payments_bp
from .wallet import wallet_bp
from .admin import admin_bp
from .categories import categories_bp
from .chat import chat_bp
from .notifications import notifications_bp
from .reviews import reviews_bp
