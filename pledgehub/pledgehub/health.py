"""
Health check endpoints for monitoring and orchestration probes.
"""
import time

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Full health check.

    Returns 200 when database and cache respond, 500 otherwise.
    """
    status = {
        'status': 'healthy',
        'timestamp': time.time(),
        'version': getattr(settings, 'VERSION', '1.0.0'),
        'checks': {}
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        status['checks']['database'] = 'ok'
    except Exception as e:
        status['status'] = 'unhealthy'
        status['checks']['database'] = f'error: {str(e)[:100]}'

    try:
        cache.set('health:ping', 'pong', 10)
        if cache.get('health:ping') != 'pong':
            raise ValueError('cache round-trip mismatch')
        status['checks']['cache'] = 'ok'
    except Exception as e:
        status['status'] = 'unhealthy'
        status['checks']['cache'] = f'error: {str(e)[:100]}'

    http_status = 200 if status['status'] == 'healthy' else 500
    return JsonResponse(status, status=http_status)


def ready_check(request):
    """Readiness probe: the database accepts queries."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
        return JsonResponse({'ready': True})
    except Exception:
        return JsonResponse({'ready': False}, status=503)


def live_check(request):
    """Liveness probe."""
    return JsonResponse({'alive': True, 'timestamp': time.time()})
