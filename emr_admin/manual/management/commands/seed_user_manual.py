from django.core.management.base import BaseCommand
from django.db import transaction

from emr_admin.manual.models import ManualSection

DEFAULT_SECTIONS = [
    {
        'slug': 'introduction',
        'tab': 'manual',
        'title': 'Introduction',
        'body': (
            "Cura HealthCare EMR manages patients, appointments, billing, documents and stock "
            "for clinics of any size.\n\n"
            "Each clinic works inside its own organization. Users only ever see the data of the "
            "organization they belong to."
        ),
    },
    {
        'slug': 'accessing-the-application',
        'tab': 'manual',
        'title': 'How to access the application',
        'body': (
            "1. Open your clinic address in a current browser.\n"
            "2. Sign in with the username and password from your welcome email.\n"
            "3. Change the temporary password on first sign in.\n\n"
            "Accounts that have been disabled, or whose organization is suspended, cannot sign in."
        ),
    },
    {
        'slug': 'troubleshooting',
        'tab': 'manual',
        'title': 'Troubleshooting',
        'body': (
            "**Cannot sign in.** Check the username, then ask your administrator whether the account is active.\n\n"
            "**Subscription expired.** Access continues during the grace period. Renew from the subscription page."
        ),
    },
    {
        'slug': 'setup-checklist',
        'tab': 'setup',
        'title': 'Complete setup first',
        'body': (
            "Before registering patients or raising bills, complete four configurations:\n\n"
            "1. Create role permissions.\n"
            "2. Create shifts.\n"
            "3. Define fees and charges.\n"
            "4. Create the document header and footer."
        ),
    },
    {
        'slug': 'create-roles',
        'tab': 'roles',
        'title': 'Roles and permissions',
        'body': (
            "Administrators create roles and choose which modules each role can view, create, edit or delete.\n\n"
            "Built-in roles: admin, doctor, nurse, pharmacist, receptionist and staff. "
            "Only administrators manage users."
        ),
    },
    {
        'slug': 'create-shifts',
        'tab': 'shifts',
        'title': 'Shifts',
        'body': (
            "Define default working hours for each staff member, then add custom shifts for exceptions. "
            "Appointments can only be booked inside a clinician's shift."
        ),
    },
    {
        'slug': 'fees-and-charges',
        'tab': 'billing',
        'title': 'Fees and charges',
        'body': (
            "Set consultation fees per doctor and charges per department. "
            "Invoices pick up these prices automatically."
        ),
    },
    {
        'slug': 'document-header-footer',
        'tab': 'documents',
        'title': 'Document header and footer',
        'body': (
            "Enter the clinic name, address and logo once. "
            "Every generated PDF uses the saved header and footer."
        ),
    },
    {
        'slug': 'next-steps',
        'tab': 'features',
        'title': 'Next steps',
        'body': (
            "With setup complete, register patients, book appointments and record consultations. "
            "Prescriptions, lab results and invoices are available from the patient record."
        ),
    },
    {
        'slug': 'inventory-items',
        'tab': 'inventory',
        'title': 'Items and stock',
        'body': (
            "Add each item with a category, purchase and sale price, minimum stock and reorder point. "
            "A SKU and barcode are generated when left blank.\n\n"
            "Stock changes only through adjustments, issues and goods receipts. "
            "Every change is recorded as a stock movement."
        ),
    },
    {
        'slug': 'inventory-batches',
        'tab': 'inventory',
        'title': 'Batches and expiry',
        'body': (
            "Items with batch or expiry tracking are issued first-expiry-first-out. "
            "Expired batches are written off by the nightly expiry check, "
            "and batches close to expiry raise an alert."
        ),
    },
    {
        'slug': 'purchase-orders',
        'tab': 'inventory',
        'title': 'Purchase orders and goods receipts',
        'body': (
            "Create a purchase order for a supplier and email it from the order screen. "
            "Record deliveries as goods receipts; stock and received quantities update straight away. "
            "Orders with receipts cannot be deleted, only cancelled."
        ),
    },
    {
        'slug': 'saas-customers',
        'tab': 'saas',
        'title': 'Customers and subscriptions',
        'body': (
            "SaaS owners onboard clinics from the customers screen. "
            "A new customer gets an admin user and a welcome email.\n\n"
            "Subscriptions send reminders 7 days, 1 day and on the day before expiry. "
            "Unpaid customers are suspended once an invoice is overdue beyond the grace period."
        ),
    },
]


class Command(BaseCommand):
    help = 'Create or update the default user manual sections'

    def add_arguments(self, parser):
        parser.add_argument(
            '--reset',
            action='store_true',
            help='Delete sections that are not part of the defaults',
        )

    def handle(self, *args, **options):
        created = 0
        updated = 0
        with transaction.atomic():
            for order, section in enumerate(DEFAULT_SECTIONS, start=1):
                _, was_created = ManualSection.objects.update_or_create(
                    slug=section['slug'],
                    defaults={
                        'tab': section['tab'],
                        'title': section['title'],
                        'body': section['body'],
                        'order': order,
                        'is_published': True,
                    }
                )
                if was_created:
                    created += 1
                else:
                    updated += 1

            removed = 0
            if options['reset']:
                removed, _ = ManualSection.objects.exclude(
                    slug__in=[section['slug'] for section in DEFAULT_SECTIONS]
                ).delete()

        self.stdout.write(self.style.SUCCESS(
            f"Manual sections created: {created}, updated: {updated}, removed: {removed}"
        ))
