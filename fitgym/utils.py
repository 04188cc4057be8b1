from flask import current_app


def filter_admin_menu_by_roles(user):
    """
    Filter staff menu items based on member roles.

    Args:
        user: Current user object with roles attribute

    Returns:
        List of menu items the user has access to, separators tidied
    """
    if not user.is_authenticated:
        return []

    admin_menu = current_app.config.get('ADMIN_MENU_ITEMS', [])

    if user.is_admin:
        return admin_menu

    user_role_names = [role.name for role in user.roles]

    filtered_menu = []
    for item in admin_menu:
        if item is None:
            filtered_menu.append(item)
            continue
        # Items without role requirements are admin-only
        required_roles = item.get('roles', [])
        if required_roles and any(role in user_role_names for role in required_roles):
            filtered_menu.append(item)

    # Drop leading, trailing and consecutive separators
    cleaned_menu = []
    prev_was_separator = True
    for item in filtered_menu:
        if item is None:
            if not prev_was_separator:
                cleaned_menu.append(item)
                prev_was_separator = True
        else:
            cleaned_menu.append(item)
            prev_was_separator = False

    if cleaned_menu and cleaned_menu[-1] is None:
        cleaned_menu.pop()

    return cleaned_menu


def wants_json(request):
    """True for API paths and requests that ask for JSON."""
    return (request.path.startswith('/api/') or request.is_json
            or 'application/json' in request.headers.get('Accept', ''))
