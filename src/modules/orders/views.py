"""Order API views.

Exposes ``OrderService`` and ``DisputeService`` via HTTP using a DRF
ViewSet.  Domain exceptions propagate to the project exception handler,
which maps them to HTTP status codes and the standard error envelope.
"""

from __future__ import annotations

from typing import Iterable

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.accounts.dtos import ActorDTO
from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.notifications.services import NotificationService
from modules.orders.constants import RECENT_ORDERS_LIMIT
from modules.orders.dtos import (
    ConfirmPaymentDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    OpenDisputeDTO,
    ShipOrderDTO,
    ShippingAddressDTO,
    UpdateDisputeDTO,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.notifications import OrderNotifications
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    ConfirmPaymentSerializer,
    CreateOrderSerializer,
    NotesSerializer,
    OpenDisputeSerializer,
    OrderListSerializer,
    OrderSerializer,
    OverrideStatusSerializer,
    ShipOrderSerializer,
    UpdateDisputeSerializer,
)
from modules.orders.services import DisputeService, OrderService
from modules.payments.registry import PaymentVerifierRegistry
from modules.products.repositories.django_repository import ProductDjangoRepository

LISTING_ACTIONS = {"list", "retrieve", "mine", "seller", "new_sales", "open_sales", "disputes", "recent"}


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` / ``DisputeService`` with injected repositories
    (DIP).  Does **not** extend ``ModelViewSet``: all ORM access goes
    through the service/repository layer.
    """

    queryset = Order.objects.none()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "buyer__email"]
    ordering_fields = ["created_at", "total_price", "status", "paid_at"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        notifications = OrderNotifications(
            notification_service=NotificationService(),
            user_repository=UserDjangoRepository(),
        )
        self._service = OrderService(
            order_repository=order_repository,
            product_repository=ProductDjangoRepository(),
            notifications=notifications,
            payment_verifiers=PaymentVerifierRegistry.from_settings(),
        )
        self._disputes = DisputeService(
            order_repository=order_repository,
            notifications=notifications,
        )

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action == "pay":
            throttle_scope = "order_payment"
        elif self.action in LISTING_ACTIONS:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _actor(self, request: Request) -> ActorDTO:
        return ActorDTO.from_user(request.user)

    def _paginated(self, request: Request, queryset: Iterable[Order]) -> Response:
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(OrderListSerializer(page, many=True).data)
        return Response(OrderListSerializer(queryset, many=True).data)

    def _order_response(self, order: Order, status_code: int = status.HTTP_200_OK) -> Response:
        return Response(OrderSerializer(order).data, status=status_code)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/"""
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dto = CreateOrderDTO(
            buyer_id=request.user.pk,
            items=[
                CreateOrderItemDTO(product_id=item["product_id"], quantity=item["quantity"])
                for item in data["items"]
            ],
            shipping_address=ShippingAddressDTO(**data["shipping_address"]),
            payment_method=data["payment_method"],
            packaging_option=data["packaging_option"],
            notes=data["notes"],
        )
        order = self._service.create_order(dto)
        return self._order_response(order, status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/ (admin)

        Filtering (status, dispute status, buyer, payment method, paid
        flag, date range, total range) is handled by ``OrderFilter``.
        """
        queryset = self.filter_queryset(self._service.list_orders(self._actor(request)))
        return self._paginated(request, queryset)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._service.get_order(pk, self._actor(request))
        return self._order_response(order)

    @action(detail=False, methods=["get"])
    def mine(self, request: Request) -> Response:
        return self._paginated(request, self._service.list_buyer_orders(self._actor(request)))

    @action(detail=False, methods=["get"])
    def seller(self, request: Request) -> Response:
        return self._paginated(request, self._service.list_seller_orders(self._actor(request)))

    @action(detail=False, methods=["get"], url_path="new-sales")
    def new_sales(self, request: Request) -> Response:
        return self._paginated(request, self._service.seller_new_sales(self._actor(request)))

    @action(detail=False, methods=["get"], url_path="open-sales")
    def open_sales(self, request: Request) -> Response:
        return self._paginated(request, self._service.seller_open_sales(self._actor(request)))

    @action(detail=False, methods=["get"])
    def disputes(self, request: Request) -> Response:
        """GET /api/v1/orders/disputes/ (admin): full orders, newest dispute first."""
        queryset = self._service.list_disputes(self._actor(request))
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(OrderSerializer(page, many=True).data)

    @action(detail=False, methods=["get"])
    def recent(self, request: Request) -> Response:
        try:
            limit = int(request.query_params.get("limit", RECENT_ORDERS_LIMIT))
        except ValueError:
            limit = RECENT_ORDERS_LIMIT
        orders = self._service.recent_orders(self._actor(request), limit=limit)
        return Response(OrderListSerializer(orders, many=True).data)

    @action(detail=False, methods=["get"])
    def stats(self, request: Request) -> Response:
        return Response(self._service.get_stats(self._actor(request)))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def pay(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/pay/

        Re-confirming a paid order returns it unchanged.
        """
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        self._service.get_order(pk, self._actor(request))
        order = self._service.confirm_payment(
            pk,
            ConfirmPaymentDTO(
                transaction_id=data["id"] or None,
                status=data["status"],
                payer_email=data["email_address"] or None,
                update_time=data["update_time"] or None,
            ),
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def ship(self, request: Request, pk: str | None = None) -> Response:
        serializer = ShipOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.ship_order(
            pk, self._actor(request), ShipOrderDTO(**serializer.validated_data)
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def deliver(self, request: Request, pk: str | None = None) -> Response:
        order = self._service.confirm_delivery(pk, self._actor(request))
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Stock is not restored on cancellation.
        """
        serializer = NotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.cancel_order(
            pk, self._actor(request), notes=serializer.validated_data["notes"]
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"], url_path="status")
    def override_status(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/status/ (admin override, unguarded)"""
        serializer = OverrideStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = self._service.override_status(
            pk, self._actor(request), data["status"], notes=data["notes"]
        )
        return self._order_response(order)

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post", "patch"])
    def dispute(self, request: Request, pk: str | None = None) -> Response:
        """POST opens the order's dispute; PATCH (admin) updates it."""
        actor = self._actor(request)
        if request.method == "POST":
            serializer = OpenDisputeSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            order = self._disputes.open_dispute(pk, actor, OpenDisputeDTO(**serializer.validated_data))
            return self._order_response(order, status.HTTP_201_CREATED)

        serializer = UpdateDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._disputes.update_dispute(pk, actor, UpdateDisputeDTO(**serializer.validated_data))
        return self._order_response(order)
