"""
Celery workers: the scheduler collaborator's entry points
"""
