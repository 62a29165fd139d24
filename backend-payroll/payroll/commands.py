"""
CLI commands

    flask otp purge-expired [--older-than-hours N]
"""

from datetime import timedelta

import click
from flask import current_app
from flask.cli import AppGroup

from payroll.services.otp_store import OTPStore
from payroll.utils.helpers import utcnow

otp_cli = AppGroup('otp', help='OTP challenge maintenance')


@otp_cli.command('purge-expired')
@click.option('--older-than-hours', type=int, default=None,
              help='Keep challenges that expired less than N hours ago (default: OTP_PURGE_RETENTION_HOURS)')
def purge_expired_cmd(older_than_hours):
    """Delete challenges whose expiry is past the retention window"""
    if older_than_hours is None:
        older_than_hours = current_app.config.get('OTP_PURGE_RETENTION_HOURS', 24)

    before = utcnow() - timedelta(hours=older_than_hours)
    deleted = OTPStore().purge_expired(before)
    click.echo(f"Purged {deleted} expired OTP challenge(s) older than {older_than_hours}h")
