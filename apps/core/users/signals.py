from django.contrib.auth.signals import user_logged_in, user_logged_out
from django.dispatch import receiver

from apps.core.users.audit import log_audit_event


def _session_event(request, user, action):
    log_audit_event(
        request=request,
        action=action,
        school=getattr(user, 'school', None),
        target=user,
        details=f"Role={user.role}",
        user=user,
    )


@receiver(user_logged_in)
def log_login(sender, request, user, **kwargs):
    _session_event(request, user, 'user.login')


@receiver(user_logged_out)
def log_logout(sender, request, user, **kwargs):
    if user is None:
        return
    _session_event(request, user, 'user.logout')
