"""
Manager App - Process Entry Point and Job Scheduling

Responsibilities:
- Load configuration and build the OpenSearch and S3 clients
- Register one cron trigger per cleanup/backup job (APScheduler)
- Guarantee single-flight execution per job identity
- Graceful shutdown on SIGINT/SIGTERM
"""
