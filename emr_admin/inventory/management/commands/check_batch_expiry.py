from django.core.management.base import BaseCommand, CommandError

from emr_admin.core.cache_utils import invalidate_inventory_cache
from emr_admin.inventory.services import scan_batch_expiry
from emr_admin.tenants.models import Organization


class Command(BaseCommand):
    help = 'Expire past-date batches and raise expiring-soon stock alerts'

    def add_arguments(self, parser):
        parser.add_argument(
            '--organization',
            type=str,
            help='Only scan the organization with this subdomain',
        )
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Warning window in days (defaults to INVENTORY_EXPIRY_WARNING_DAYS)',
        )

    def handle(self, *args, **options):
        organization = None
        if options['organization']:
            try:
                organization = Organization.objects.get(subdomain=options['organization'])
            except Organization.DoesNotExist:
                raise CommandError(f"Organization '{options['organization']}' not found")

        result = scan_batch_expiry(organization=organization, warning_days=options['days'])
        invalidate_inventory_cache()
        self.stdout.write(self.style.SUCCESS(
            f"Expired batches: {result['expired']}, new expiring-soon alerts: {result['expiring_soon']}"
        ))
