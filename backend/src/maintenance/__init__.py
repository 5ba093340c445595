"""Periodic maintenance of the authorization store.

Tasks are imported lazily to avoid circular dependencies
Use: from maintenance.tasks import cleanup_expired_data_task
"""
