from django.core.management.base import BaseCommand

from clinic.services.billing import mark_overdue


class Command(BaseCommand):
    help = "Flag pending invoices whose due date has passed as overdue."

    def handle(self, *args, **options):
        count = mark_overdue()
        self.stdout.write(self.style.SUCCESS(f"{count} invoice(s) marked overdue"))
