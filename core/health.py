"""
BALADI Monitoring & Health Check Endpoints
==========================================

Provides:
1. /health/ - Basic liveness check (for load balancers/Docker)
2. /health/ready/ - Readiness check (DB, cache, Celery status)
"""

import time
import logging
from django.http import JsonResponse
from django.db import DatabaseError, connection
from django.core.cache import cache
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt
from django.utils import timezone

logger = logging.getLogger('baladi.monitoring')

SERVICE_NAME = 'baladi'


@csrf_exempt
@require_GET
def health_check(request):
    """
    Basic liveness probe.
    Returns 200 if the Django process is alive.
    """
    return JsonResponse({
        'status': 'ok',
        'service': SERVICE_NAME,
        'timestamp': timezone.now().isoformat(),
    })


def _check_database():
    start = time.time()
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {
        'status': 'healthy',
        'response_time_ms': round((time.time() - start) * 1000, 2),
        'engine': connection.vendor,
    }


def _check_cache():
    start = time.time()
    cache_key = '_healthcheck_ping'
    cache.set(cache_key, 'pong', 10)
    if cache.get(cache_key) != 'pong':
        raise ConnectionError("Cache read/write mismatch")
    return {
        'status': 'healthy',
        'response_time_ms': round((time.time() - start) * 1000, 2),
    }


def _check_celery():
    from baladi_core.celery import app as celery_app

    start = time.time()
    ping_result = celery_app.control.inspect(timeout=3.0).ping()
    celery_time = round((time.time() - start) * 1000, 2)

    if ping_result:
        return {
            'status': 'healthy',
            'workers': len(ping_result),
            'response_time_ms': celery_time,
        }
    logger.warning("Health check - No Celery workers responding")
    return {
        'status': 'degraded',
        'error': 'No workers responding',
        'response_time_ms': celery_time,
    }


@csrf_exempt
@require_GET
def readiness_check(request):
    """
    Readiness probe - checks all critical dependencies.
    Returns 200 only if the database and cache are healthy.
    Celery being down is reported as degraded, not critical.
    """
    checks = {}
    all_healthy = True

    try:
        checks['database'] = _check_database()
    except DatabaseError as e:
        checks['database'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"Health check - Database unhealthy: {e}")

    try:
        checks['cache'] = _check_cache()
    except (ConnectionError, OSError) as e:
        checks['cache'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"Health check - Cache unhealthy: {e}")

    try:
        checks['celery'] = _check_celery()
    except (ConnectionError, OSError) as e:
        checks['celery'] = {'status': 'unhealthy', 'error': str(e)}
        logger.error(f"Health check - Celery unhealthy: {e}")

    return JsonResponse({
        'status': 'healthy' if all_healthy else 'unhealthy',
        'service': SERVICE_NAME,
        'timestamp': timezone.now().isoformat(),
        'checks': checks,
    }, status=200 if all_healthy else 503)
