from datetime import timedelta
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone
from faker import Faker  # Import Faker class for explicit generation

from loyalty.models import LoyaltyAction
from marketplace.models import Discount, Order, OrderItem, Product, Promotion, ShippingMethod, Store, Tax

User = get_user_model()
fake = Faker()  # Instantiate Faker once


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    username = factory.Sequence(lambda n: f"user_{n}")
    email = factory.Sequence(lambda n: f"user_{n}@example.com")
    first_name = factory.Faker("first_name")
    password = factory.django.Password("defaultpassword")
    is_active = True


class SellerFactory(UserFactory):
    username = factory.Sequence(lambda n: f"seller_{n}")
    email = factory.Sequence(lambda n: f"seller_{n}@example.com")


class AdminFactory(UserFactory):
    is_superuser = True
    is_staff = True
    username = factory.Sequence(lambda n: f"admin_{n}")
    email = factory.Sequence(lambda n: f"admin_{n}@example.com")


class StoreFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Store

    owner = factory.SubFactory(SellerFactory)
    name = factory.Sequence(lambda n: f"Store {n}")
    description = factory.Faker("sentence", nb_words=8)
    status = "active"
    is_deleted = False


class ShippingMethodFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ShippingMethod

    store = factory.SubFactory(StoreFactory)
    name = factory.Iterator(["Standard", "Express", "Pickup"])
    cost = Decimal("5.00")
    status = "active"
    is_deleted = False


class DiscountFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Discount

    store = factory.SubFactory(StoreFactory)
    name = factory.Sequence(lambda n: f"Discount {n}")
    type = "percentage"
    value = Decimal("10.00")
    status = "active"
    is_deleted = False


class TaxFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Tax

    store = factory.SubFactory(StoreFactory)
    name = factory.Sequence(lambda n: f"Tax {n}")
    type = "percentage"
    rate = Decimal("10.00")
    status = "active"
    is_deleted = False


class PromotionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Promotion

    store = factory.SubFactory(StoreFactory)
    name = factory.Sequence(lambda n: f"Promotion {n}")
    type = "coupon"
    value = Decimal("10.00")
    code = factory.Sequence(lambda n: f"SAVE{n}")
    starts_at = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    ends_at = factory.LazyFunction(lambda: timezone.now() + timedelta(days=7))
    status = "active"
    is_deleted = False


class ProductFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Product
        skip_postgeneration_save = True

    store = factory.SubFactory(StoreFactory)
    name = factory.Sequence(lambda n: f"Product {n}")
    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    description = factory.Faker("paragraph", nb_sentences=3)
    price = Decimal("100.00")
    price_final = None
    stock = 10
    status = "active"
    discount = None

    @factory.post_generation
    def taxes(self, create, extracted, **kwargs):
        if not create or not extracted:
            return
        self.taxes.add(*extracted)


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order

    user = factory.SubFactory(UserFactory)
    store = factory.SubFactory(StoreFactory)
    status = "pending"
    subtotal = Decimal("100.00")
    total_discount_amount = Decimal("0.00")
    tax_amount = Decimal("0.00")
    shipping_amount = Decimal("0.00")
    total = Decimal("100.00")
    shipping_address = factory.LazyFunction(
        lambda: {"street": fake.street_address(), "city": fake.city(), "postal_code": fake.postcode()}
    )


class OrderItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderItem

    order = factory.SubFactory(OrderFactory)
    product = factory.SubFactory(ProductFactory, store=factory.SelfAttribute("..order.store"))
    quantity = 1
    unit_price = Decimal("100.00")
    unit_price_final = Decimal("100.00")
    line_subtotal = Decimal("100.00")
    line_discount = Decimal("0.00")
    product_name = factory.LazyAttribute(lambda o: o.product.name)


class LoyaltyActionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = LoyaltyAction
        django_get_or_create = ("key",)

    key = factory.Sequence(lambda n: f"action_{n}")
    name = factory.LazyAttribute(lambda o: o.key.replace("_", " ").title())
    description = factory.LazyAttribute(lambda o: f"Points for {o.key}")
    default_points = 25
    is_active = True
