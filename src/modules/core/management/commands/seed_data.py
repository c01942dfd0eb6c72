from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.accounts.dtos import ActorDTO
from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.notifications.services import NotificationService
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import (
    ConfirmPaymentDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    ShipOrderDTO,
    ShippingAddressDTO,
)
from modules.orders.notifications import OrderNotifications
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.registry import PaymentVerifierRegistry
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=30)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        admin, buyers, sellers = self._seed_users()
        products = self._seed_products(sellers)
        orders_created = self._seed_orders(admin, buyers, products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"buyers={len(buyers)}, "
                f"sellers={len(sellers)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _user(self, username: str, password: str, **extra):
        User = get_user_model()
        user = User.objects.filter(username=username).first()
        if user is None:
            user = User.objects.create_user(username, password=password, **extra)
        return user

    def _seed_users(self):
        self.stdout.write("Creating users...")
        admin = self._user(
            "admin", "admin123", email="admin@marketplace.local", is_staff=True, is_superuser=True
        )
        buyers = [
            self._user(name.lower(), "buyer123", email=f"{name.lower()}@example.com", first_name=name)
            for name in ("Ana", "Bruno", "Carla", "Daniel", "Elisa")
        ]
        sellers = [
            self._user(
                f"studio-{name.lower()}",
                "seller123",
                email=f"studio-{name.lower()}@example.com",
                first_name=f"Studio {name}",
            )
            for name in ("Aurora", "Boreal", "Cobalt")
        ]
        self.stdout.write(self.style.SUCCESS("Creating users... Done!"))
        return admin, buyers, sellers

    def _seed_products(self, sellers) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        catalog = [
            ("Sunset over the Bay", Decimal("120.00")),
            ("Abstract Blue No. 4", Decimal("340.00")),
            ("Charcoal Study", Decimal("75.50")),
            ("Ceramic Vase", Decimal("48.90")),
            ("Linocut Print", Decimal("32.00")),
            ("Oak Sculpture", Decimal("610.00")),
            ("Watercolor Garden", Decimal("95.00")),
            ("City at Night", Decimal("210.00")),
            ("Hand-bound Sketchbook", Decimal("27.50")),
            ("Bronze Figurine", Decimal("450.00")),
        ]
        for index, (name, price) in enumerate(catalog):
            product, _ = Product.objects.get_or_create(
                name=name,
                defaults={
                    "seller": sellers[index % len(sellers)],
                    "description": f"{name} (seed)",
                    "price": price,
                    "stock_quantity": random.randint(5, 50),
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_orders(self, admin, buyers, products: list[Product], count: int) -> int:
        self.stdout.write("Creating orders...")
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            notifications=OrderNotifications(NotificationService(), UserDjangoRepository()),
            # seed payments skip gateway verification
            payment_verifiers=PaymentVerifierRegistry(),
        )
        admin_actor = ActorDTO.from_user(admin)
        methods = [PaymentMethod.STRIPE, PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER]

        for i in range(count):
            buyer = random.choice(buyers)
            lines = random.sample(products, k=random.randint(1, 3))
            order = service.create_order(
                CreateOrderDTO(
                    buyer_id=buyer.pk,
                    items=[
                        CreateOrderItemDTO(product_id=p.id, quantity=random.randint(1, 2))
                        for p in lines
                    ],
                    shipping_address=ShippingAddressDTO(
                        address=f"{random.randint(1, 999)} Market Street",
                        city="Springfield",
                        postal_code=f"{random.randint(10000, 99999)}",
                        country="US",
                    ),
                    payment_method=random.choice(methods),
                    notes=f"Seed order {i + 1}",
                )
            )

            stage = random.choices(
                ["pending", "paid", "shipped", "delivered", "cancelled"],
                weights=[0.2, 0.25, 0.2, 0.25, 0.1],
                k=1,
            )[0]
            if stage == "cancelled":
                service.cancel_order(str(order.id), admin_actor, notes="Seed cancellation")
                continue
            if stage == "pending":
                continue
            service.confirm_payment(str(order.id), ConfirmPaymentDTO(transaction_id=f"SEED-{order.order_number}"))
            if stage in {"shipped", "delivered"}:
                service.ship_order(
                    str(order.id),
                    admin_actor,
                    ShipOrderDTO(tracking_number=f"TRK{random.randint(100000, 999999)}"),
                )
            if stage == "delivered":
                service.confirm_delivery(str(order.id), admin_actor)

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return count
