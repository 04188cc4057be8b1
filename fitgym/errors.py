from flask import render_template, jsonify, request, flash, redirect, url_for
from fitgym import db, login
from fitgym.utils import wants_json


def _error_response(template, status, message):
    if wants_json(request):
        return jsonify({'success': False, 'error': message}), status
    return render_template(template), status


def register_error_handlers(app):
    """Register error handlers with the Flask application"""

    @login.unauthorized_handler
    def unauthorized():
        if wants_json(request):
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        flash('Please log in to access this page.', 'info')
        return redirect(url_for('members.auth_login', next=request.full_path))

    @app.errorhandler(400)
    def bad_request_error(error):
        return _error_response('errors/400.html', 400, 'Bad request')

    @app.errorhandler(403)
    def forbidden_error(error):
        return _error_response('errors/403.html', 403, 'Access denied')

    @app.errorhandler(404)
    def not_found_error(error):
        return _error_response('errors/404.html', 404, 'Not found')

    @app.errorhandler(429)
    def ratelimit_error(error):
        return _error_response('errors/429.html', 429,
                               'Too many requests. Please wait a few minutes before trying again.')

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return _error_response('errors/500.html', 500, 'An internal error occurred')
