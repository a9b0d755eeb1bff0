from django.test import TestCase
from rest_framework.test import APIClient

from account.models import DeliveryPartner, User


class UserModelTests(TestCase):
    def test_create_user_hashes_password(self):
        user = User.objects.create_user(email="user@example.com", password="Pass123!")

        self.assertNotEqual(user.password, "Pass123!")
        self.assertTrue(user.check_password("Pass123!"))
        self.assertEqual(user.role, User.Role.RETAILER)

    def test_create_user_requires_email(self):
        with self.assertRaisesMessage(ValueError, "Users must have an email"):
            User.objects.create_user(email="", password="Pass123!")

    def test_superuser_is_an_operator(self):
        admin = User.objects.create_superuser(email="ops@example.com", password="Pass123!")
        self.assertTrue(admin.is_operator)

    def test_display_name_prefers_business_name(self):
        user = User.objects.create_user(email="a@example.com", first_name="Mina", business_name="Mina Traders")
        self.assertEqual(user.display_name, "Mina Traders")
        user.business_name = ""
        self.assertEqual(user.display_name, "Mina")


class RegistrationApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_wholesaler_and_login(self):
        resp = self.client.post(
            "/auth/register/",
            {"email": "bulk@example.com", "password": "Pass123!", "role": "WHOLESALER", "business_name": "Bulk Co"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertNotIn("password", resp.data)

        login = self.client.post("/auth/login/", {"email": "bulk@example.com", "password": "Pass123!"}, format="json")
        self.assertEqual(login.status_code, 200, login.data)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['access']}")
        me = self.client.get("/auth/me/")
        self.assertEqual(me.data["role"], "WHOLESALER")

    def test_delivery_partner_registration_creates_partner_profile(self):
        resp = self.client.post(
            "/auth/register/",
            {"email": "rider@example.com", "password": "Pass123!", "role": "DELIVERY_PARTNER", "first_name": "Ravi"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        partner = DeliveryPartner.objects.get(user__email="rider@example.com")
        self.assertEqual(partner.name, "Ravi")

    def test_operators_cannot_self_register(self):
        resp = self.client.post(
            "/auth/register/",
            {"email": "root@example.com", "password": "Pass123!", "role": "ADMIN"},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("role", resp.data)
        self.assertFalse(User.objects.filter(email="root@example.com").exists())
