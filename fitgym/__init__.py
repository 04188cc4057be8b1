from datetime import date
import logging
from logging.handlers import SMTPHandler, RotatingFileHandler
import os

from flask import Flask, flash, redirect, url_for
from flask_sqlalchemy import SQLAlchemy
from flask_mail import Mail
from flask_migrate import Migrate
from flask_login import LoginManager, current_user, logout_user
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_moment import Moment

# Initialize extensions
db = SQLAlchemy()
mail = Mail()
migrate = Migrate()
login = LoginManager()
moment = Moment()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

# Bulma and moment.js are served from jsDelivr
SECURITY_HEADERS = {
    'Content-Security-Policy': (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "font-src 'self'; "
        "img-src 'self' data:; "
        "connect-src 'self';"
    ),
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Permissions-Policy': 'geolocation=(), microphone=(), camera=()',
}


def create_app(config_name='development'):
    """
    Build the FitGym application.

    Args:
        config_name: Key into config.config ('development', 'testing', 'production')
    """
    app = Flask(__name__)

    from config import config
    app.config.from_object(config[config_name])

    db.init_app(app)
    mail.init_app(app)
    migrate.init_app(app, db)
    login.init_app(app)
    login.login_view = 'members.auth_login'
    login.login_message_category = 'info'
    moment.init_app(app)
    limiter.init_app(app)

    configure_logging(app)
    register_template_helpers(app)
    register_middleware(app)
    register_blueprints(app)

    return app


def configure_logging(app):
    """Rotating app.log under instance/logs, plus error mails in production"""
    logs_dir = os.path.join(app.instance_path, 'logs')
    os.makedirs(logs_dir, exist_ok=True)

    file_handler = RotatingFileHandler(os.path.join(logs_dir, 'app.log'), maxBytes=10240, backupCount=10)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.DEBUG if app.debug else logging.INFO)

    if not app.debug and not app.testing and app.config.get('MAIL_SERVER'):
        auth = None
        if app.config['MAIL_USERNAME'] or app.config['MAIL_PASSWORD']:
            auth = (app.config['MAIL_USERNAME'], app.config['MAIL_PASSWORD'])
        mail_handler = SMTPHandler(
            mailhost=(app.config['MAIL_SERVER'], app.config['MAIL_PORT']),
            fromaddr=app.config.get('MAIL_DEFAULT_SENDER') or 'no-reply@' + app.config['MAIL_SERVER'],
            toaddrs=app.config['ADMINS'],
            subject=f"{app.config['GYM_NAME']} Failure",
            credentials=auth,
            secure=() if app.config['MAIL_USE_TLS'] else None)
        mail_handler.setLevel(logging.ERROR)
        app.logger.addHandler(mail_handler)

    app.logger.info('FitGym application startup')


def register_template_helpers(app):
    """Context processor and filters shared by every template"""

    @app.context_processor
    def inject_navigation():
        from fitgym.utils import filter_admin_menu_by_roles

        return dict(
            gym_name=app.config['GYM_NAME'],
            menu_items=app.config['MENU_ITEMS'],
            filtered_admin_menu_items=filter_admin_menu_by_roles(current_user)
        )

    @app.template_filter('email_status')
    def email_status_filter(member):
        """Badge text for a member's current email: Temporary, Verified or Unverified"""
        if member.has_temporary_email:
            return 'Temporary'
        return 'Verified' if member.is_verified else 'Unverified'


def register_middleware(app):
    """Security headers and per-request account checks"""

    @app.after_request
    def add_security_headers(response):
        response.headers.update(SECURITY_HEADERS)
        return response

    @app.before_request
    def enforce_lockout():
        """Staff can lock an account while the member is logged in"""
        if current_user.is_authenticated and current_user.lockout:
            logout_user()
            flash('Your account has been locked. Please contact the gym.', 'error')
            return redirect(url_for('members.auth_login'))

    @app.before_request
    def record_last_seen():
        # At most one write per member per day
        if current_user.is_authenticated and current_user.last_seen != date.today():
            current_user.last_seen = date.today()
            db.session.commit()


def register_blueprints(app):
    """Register blueprints and error handlers"""
    from fitgym.main import bp as main_bp
    from fitgym.members import bp as members_bp
    from fitgym.api import bp as api_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(members_bp, url_prefix='/members')
    app.register_blueprint(api_bp, url_prefix='/api/v1')

    from fitgym.errors import register_error_handlers
    register_error_handlers(app)

    from fitgym import models
