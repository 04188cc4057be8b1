"""
Members blueprint: authentication, account settings and staff management of
member records.
"""

from flask import Blueprint

bp = Blueprint('members', __name__)

from fitgym.members import routes
