"""Background handlers for Praxis.

Handlers listen to bus events or run on a cron schedule and call into the
service facade.
"""
