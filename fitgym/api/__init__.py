from flask import Blueprint

bp = Blueprint('api', __name__)

from fitgym.api import routes
