from . import csrf


def csrf_guard(request):
    """Expose the session CSRF token to templates as ``wms_csrf_token``."""
    session = getattr(request, 'session', None)
    if session is None:
        return {}
    return {
        'wms_csrf_token': csrf.csrf_guard.issue_token(session),
        'wms_csrf_field': csrf.FORM_FIELD,
    }
