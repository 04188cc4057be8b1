from flask import Blueprint

bp = Blueprint('main', __name__)

from fitgym.main import routes
