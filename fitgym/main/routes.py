# Main routes for the FitGym application
from flask import render_template
from flask_login import current_user, login_required

from fitgym.main import bp


@bp.route("/index")
@bp.route("/")
@login_required
def index():
    """
    Member home page with account status and a prompt to replace a temporary email
    """
    return render_template('main/index.html', member=current_user)
