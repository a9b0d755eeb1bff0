from django.test import TestCase
from rest_framework.test import APIClient

from account.models import User
from catalog.models import Product


class ProductModelTests(TestCase):
    def test_product_sku_is_auto_generated(self):
        wholesaler = User.objects.create_user(email="w@example.com", password="Pass123!", role=User.Role.WHOLESALER)
        product = Product.objects.create(wholesaler=wholesaler, name="Wireless Earbuds", price="79.99")

        self.assertRegex(product.sku, r"^WIRELESSEARB-")


class ProductApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.wholesaler = User.objects.create_user(
            email="bulk@example.com", password="Pass123!", role=User.Role.WHOLESALER
        )
        self.other = User.objects.create_user(
            email="other@example.com", password="Pass123!", role=User.Role.WHOLESALER
        )
        self.retailer = User.objects.create_user(email="shop@example.com", password="Pass123!")

    def test_wholesaler_lists_a_product(self):
        self.client.force_authenticate(self.wholesaler)
        resp = self.client.post(
            "/catalog/products/",
            {"name": "Sugar 1kg", "price": "45.00", "stock_quantity": 100, "unit": "bag"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(resp.data["wholesaler"], self.wholesaler.id)

    def test_retailer_cannot_list_products(self):
        self.client.force_authenticate(self.retailer)
        resp = self.client.post("/catalog/products/", {"name": "Sugar 1kg", "price": "45.00"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(Product.objects.exists())

    def test_price_must_be_positive(self):
        self.client.force_authenticate(self.wholesaler)
        resp = self.client.post("/catalog/products/", {"name": "Free", "price": "0"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("price", resp.data)

    def test_filter_by_wholesaler(self):
        Product.objects.create(wholesaler=self.wholesaler, name="Rice", price="250.00")
        Product.objects.create(wholesaler=self.other, name="Flour", price="60.00")
        Product.objects.create(wholesaler=self.wholesaler, name="Retired", price="10.00", is_active=False)

        self.client.force_authenticate(self.retailer)
        resp = self.client.get("/catalog/products/", {"wholesaler": str(self.wholesaler.id)})

        self.assertEqual([p["name"] for p in resp.data], ["Rice"])
        self.assertEqual(self.client.get("/catalog/products/", {"wholesaler": "nope"}).data, [])
