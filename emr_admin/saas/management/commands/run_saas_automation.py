import logging
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from emr_admin.core.cache_utils import invalidate_saas_cache
from emr_admin.saas.billing import suspend_unpaid_subscriptions
from emr_admin.saas.reminders import expire_subscriptions, run_expiry_reminders

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Send subscription expiry reminders, expire lapsed subscriptions and suspend unpaid customers'

    def add_arguments(self, parser):
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Keep running, repeating every --interval seconds',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=None,
            help='Seconds between runs when looping (defaults to SAAS_REMINDER_INTERVAL_SECONDS)',
        )

    def handle(self, *args, **options):
        interval = options['interval'] or settings.SAAS_REMINDER_INTERVAL_SECONDS
        if not options['loop']:
            self.run_once()
            return

        while True:
            try:
                self.run_once()
            except Exception:
                logger.exception('SaaS automation run failed; retrying after the interval')
            time.sleep(interval)

    def run_once(self):
        reminders = run_expiry_reminders()
        expired = expire_subscriptions()
        suspended = suspend_unpaid_subscriptions()
        if expired or suspended:
            invalidate_saas_cache()

        logger.info(
            f"SaaS automation: {reminders['sent']} reminder(s) sent, {reminders['failed']} failed, "
            f"{expired} expired, {suspended} suspended"
        )
        self.stdout.write(self.style.SUCCESS(
            f"Reminders sent: {reminders['sent']} (failed: {reminders['failed']}), "
            f"subscriptions expired: {expired}, subscriptions suspended: {suspended}"
        ))
