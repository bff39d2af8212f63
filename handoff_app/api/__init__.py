# handoff_app/api/__init__.py
from flask import Blueprint

api_bp = Blueprint('api', __name__, url_prefix='/api')

from . import routes, identity_routes  # noqa: E402,F401
