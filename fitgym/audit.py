"""
Audit trail for member records and account security events.

Every change to a member record, every login attempt and every auth email
(verification, password setup, password reset) is written to
``instance/logs/audit.log`` as a single pipe-separated line.

Usage:
    from fitgym.audit import audit_log_create, audit_log_update, audit_log_delete

    audit_log_create('Member', member.id, f'Created member: {member.email}')
    audit_log_update('Member', member.id, 'Replaced temporary email', {'email': old_email})
    audit_log_delete('Member', member_id, f'Deleted member: {name}')
"""

import logging
import os
from typing import Optional, Dict, Any, Union
from flask import current_app, has_request_context
from flask_login import current_user


def setup_audit_logger():
    """Return the 'audit' logger, attaching the audit.log file handler on first use."""
    audit_logger = logging.getLogger('audit')
    audit_logger.setLevel(logging.INFO)

    if audit_logger.handlers:
        return audit_logger

    log_dir = os.path.join(current_app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.FileHandler(os.path.join(log_dir, 'audit.log'), mode='a', encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    audit_logger.addHandler(file_handler)
    audit_logger.propagate = False

    return audit_logger


def get_current_user_info() -> str:
    """Describe the acting member for audit records."""
    if has_request_context() and current_user.is_authenticated:
        return f"{current_user.email} (ID: {current_user.id})"
    return "SYSTEM"


def _format_details(data: Optional[Dict[str, Any]]) -> str:
    if not data:
        return ''
    return ' | ' + ', '.join(f'{key}={value}' for key, value in data.items())


def _write(message: str, level: int = logging.INFO):
    # Audit failures must never break the request that triggered them
    try:
        setup_audit_logger().log(level, message)
    except Exception as e:
        try:
            current_app.logger.error(f"AUDIT_FAILURE | {message} | {str(e)}")
        except Exception:
            pass


def audit_log_create(model_name: str, record_id: Union[int, str], description: str,
                     additional_data: Optional[Dict[str, Any]] = None):
    """
    Log record creation.

    Args:
        model_name: Name of the model (e.g. 'Member', 'Role')
        record_id: ID of the created record
        description: Human-readable description of the operation
        additional_data: Optional extra key/values appended to the record
    """
    _write(f"CREATE | {model_name} | ID: {record_id} | User: {get_current_user_info()} | "
           f"{description}{_format_details(additional_data)}")


def audit_log_update(model_name: str, record_id: Union[int, str], description: str,
                     changes: Optional[Dict[str, Any]] = None):
    """
    Log record updates.

    Args:
        changes: Optional dictionary of changed fields mapped to their old values
    """
    old_values = {f'old_{field}': value for field, value in (changes or {}).items()}
    _write(f"UPDATE | {model_name} | ID: {record_id} | User: {get_current_user_info()} | "
           f"{description}{_format_details(old_values)}")


def audit_log_delete(model_name: str, record_id: Union[int, str], description: str):
    _write(f"DELETE | {model_name} | ID: {record_id} | User: {get_current_user_info()} | {description}")


def audit_log_bulk_operation(operation: str, model_name: str, count: int, description: str):
    """Log bulk operations ('BULK_CREATE', 'BULK_UPDATE', 'BULK_DELETE')."""
    _write(f"{operation} | {model_name} | Count: {count} | User: {get_current_user_info()} | {description}")


def audit_log_authentication(event_type: str, email: str, success: bool,
                             additional_data: Optional[Dict[str, Any]] = None):
    """
    Log authentication events.

    Args:
        event_type: 'LOGIN', 'LOGOUT', 'PASSWORD_RESET_REQUEST', 'PASSWORD_RESET', 'PASSWORD_CHANGE', ...
        email: Email address the event relates to
        success: Whether the operation succeeded
    """
    status = "SUCCESS" if success else "FAILURE"
    _write(f"AUTH | {event_type} | {status} | User: {email}{_format_details(additional_data)}")


def audit_log_security_event(event_type: str, description: str,
                             additional_data: Optional[Dict[str, Any]] = None):
    """Log security events such as 'ACCESS_DENIED' or 'INVALID_TOKEN' at warning level."""
    _write(f"SECURITY | {event_type} | User: {get_current_user_info()} | "
           f"{description}{_format_details(additional_data)}", logging.WARNING)


def audit_log_system_event(event_type: str, description: str,
                           additional_data: Optional[Dict[str, Any]] = None):
    _write(f"SYSTEM | {event_type} | {description}{_format_details(additional_data)}")


def get_model_changes(model_instance, form_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compare a model instance with submitted values.

    Returns:
        Dictionary of changed fields mapped to their old values
    """
    changes = {}
    for field, new_value in form_data.items():
        if hasattr(model_instance, field):
            old_value = getattr(model_instance, field)
            if old_value != new_value:
                changes[field] = str(old_value) if old_value is not None else None
    return changes
