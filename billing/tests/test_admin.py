from datetime import date

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from billing.models import Customer
from billing.services.lifecycle import create_invoice, mark_invoice_paid


User = get_user_model()


class BillingAdminTests(TestCase):
    def setUp(self):
        self.superuser = User.objects.create_superuser(
            username="root",
            email="root@example.com",
            password="testpass123",
        )
        customer = Customer.objects.create(name="Willow Flats")
        self.invoice = create_invoice(
            customer=customer,
            line_items=[{"description": "Repair", "unit_price": "20.00"}],
            invoice_date=date(2024, 1, 1),
        )

    def test_superuser_sees_invoice_changelist(self):
        self.client.force_login(self.superuser)
        response = self.client.get(reverse("admin:billing_invoice_changelist"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, self.invoice.invoice_number)

    def test_invoices_cannot_be_added_from_admin(self):
        self.client.force_login(self.superuser)
        response = self.client.get(reverse("admin:billing_invoice_add"))
        self.assertEqual(response.status_code, 403)

    def test_paid_invoice_change_page_is_read_only(self):
        mark_invoice_paid(invoice_id=self.invoice.pk)
        self.client.force_login(self.superuser)
        response = self.client.get(reverse("admin:billing_invoice_change", args=[self.invoice.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertNotContains(response, 'name="tax_rate"')

    def test_staff_without_superuser_is_refused(self):
        staff = User.objects.create_user(username="staff", password="testpass123", is_staff=True)
        self.client.force_login(staff)
        response = self.client.get(reverse("admin:billing_invoice_changelist"))
        self.assertEqual(response.status_code, 302)
