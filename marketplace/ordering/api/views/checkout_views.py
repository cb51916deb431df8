from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from infrastructure.container import container
from marketplace.api.responses import error_response
from marketplace.api.serializers import ErrorResponseSerializer
from marketplace.ordering.api.serializers import CheckoutRequestSerializer, CheckoutResponseSerializer, OrderSerializer
from marketplace.ordering.domain.models import Order
from marketplace.ordering.domain.services.checkout_service import CheckoutService


class CheckoutView(APIView):
    permission_classes = [IsAuthenticated]

    def get_service(self) -> CheckoutService:
        return container.checkout_service()

    @extend_schema(
        operation_id="checkout_create",
        summary="Place an order with one store",
        description="""
        **What it receives:**
        - `store_id`: Store the cart belongs to
        - `items`: List of `{product_id, quantity}`, each product at most once
        - `shipping_method_id` (optional): One of the store's active shipping methods
        - `promotion_code` (optional): Store promotion or single-use coupon
        - `shipping_address` (optional): Free-form address object
        - `client_reference` (optional): Idempotency key

        **What it returns:**
        - The persisted order with line items, totals and price adjustments
        - 201 for a new order, 200 when `client_reference` replays an earlier one

        **Side effects after commit:**
        - Order confirmation email
        - Loyalty points for the order total
        """,
        request=CheckoutRequestSerializer,
        responses={
            201: OpenApiResponse(response=CheckoutResponseSerializer, description="Order created"),
            200: OpenApiResponse(response=CheckoutResponseSerializer, description="Earlier order replayed"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid cart"),
            404: OpenApiResponse(
                response=ErrorResponseSerializer, description="Store, product, shipping method or promotion not found"
            ),
            409: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Insufficient stock, promotion invalid or already used, non-positive total",
            ),
            500: OpenApiResponse(response=ErrorResponseSerializer, description="Internal server error"),
        },
        tags=["Marketplace - Checkout"],
    )
    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "validation_error", "kind": "invalid_input", "detail": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = self.get_service().checkout(serializer.to_command(request.user.id))
        if not result.ok:
            return error_response(result)

        outcome = result.value
        order = Order.objects.prefetch_related("items").get(pk=outcome.order.pk)
        return Response(
            {"order": OrderSerializer(order).data, "replayed": outcome.replayed},
            status=status.HTTP_200_OK if outcome.replayed else status.HTTP_201_CREATED,
        )
