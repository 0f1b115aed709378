"""
Maintenance jobs for city enrichment.

These run either as standalone Python scripts via cron / Cloud Scheduler,
or inside the API process through MaintenanceScheduler when
MAINTENANCE_SCHEDULER_ENABLED=true.

Usage:
    python -m services.api.jobs.stale_lock_sweeper
    python -m services.api.jobs.stale_refresh

Schedule (UTC):
    hourly     stale_lock_sweeper  clear enrichment locks held > 5 minutes
    04:00      stale_refresh       re-enrich cities with content > 7 days old
"""
