"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

from core.config import settings

# Schedule configuration
beat_schedule = {
    # Missed sweep - elapsed scheduled blocks become missed
    'sweep-missed-blocks': {
        'task': 'tasks.sweep_missed_blocks',
        'schedule': crontab(minute=f'*/{settings.MISSED_SWEEP_INTERVAL_MINUTES}'),
    },
}
