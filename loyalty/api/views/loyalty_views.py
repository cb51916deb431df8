import logging

from django.contrib.auth import get_user_model
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from loyalty.api.serializers import (
    AccountSummaryQuerySerializer,
    AccountSummarySerializer,
    AwardRequestSerializer,
    AwardResponseSerializer,
    LoyaltyActionSerializer,
    OrderAwardResponseSerializer,
    RedeemRequestSerializer,
    RedeemResponseSerializer,
)
from loyalty.models import LoyaltyAction
from loyalty.tasks import send_points_earned_task
from marketplace.api.responses import error_response
from marketplace.api.serializers import ErrorResponseSerializer
from marketplace.services.base import ErrorCodes, service_err

User = get_user_model()
logger = logging.getLogger(__name__)


def _validation_error(serializer):
    return Response(
        {"error": "validation_error", "kind": "invalid_input", "detail": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _notify_points_earned(account, ledger_entry):
    """Queue the points-earned email; the award is already committed."""
    if ledger_entry is None or ledger_entry.points <= 0:
        return
    try:
        send_points_earned_task.delay(
            str(account.user_id), ledger_entry.points, account.balance, ledger_entry.description
        )
    except Exception as e:
        logger.error(f"Could not queue points earned email for user {account.user_id}: {e}", exc_info=True)


def _summary_response(user_id, request):
    query = AccountSummaryQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return _validation_error(query)

    result = container.loyalty_service().get_account_summary(user_id, limit=query.validated_data["limit"])
    if not result.ok:
        return error_response(result)
    return Response(AccountSummarySerializer(result.value).data, status=status.HTTP_200_OK)


@extend_schema_view(
    list=extend_schema(summary="List loyalty actions", tags=["Loyalty - Actions"]),
    retrieve=extend_schema(summary="Get a loyalty action", tags=["Loyalty - Actions"]),
    create=extend_schema(summary="Create a loyalty action", tags=["Loyalty - Actions"]),
    partial_update=extend_schema(summary="Update a loyalty action", tags=["Loyalty - Actions"]),
)
class LoyaltyActionViewSet(viewsets.ModelViewSet):
    """Staff management of named actions and their default point values."""

    queryset = LoyaltyAction.objects.all().order_by("key")
    serializer_class = LoyaltyActionSerializer
    permission_classes = [IsAdminUser]
    http_method_names = ["get", "post", "patch", "head", "options"]


@extend_schema(
    operation_id="loyalty_account_me",
    summary="Get my loyalty account",
    description="""
    **What it returns:**
    - Account balance and lifetime counters (account is created on first access)
    - Latest ledger entries (`limit`, default 20, max 100)
    - How many points can be redeemed now and their cash value
    """,
    parameters=[OpenApiParameter(name="limit", type=int, description="Ledger entries to return (1-100)")],
    responses={
        200: OpenApiResponse(response=AccountSummarySerializer, description="Account retrieved"),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid limit"),
    },
    tags=["Loyalty - Accounts"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_account(request):
    return _summary_response(request.user.id, request)


@extend_schema(
    operation_id="loyalty_account_by_user",
    summary="Get a user's loyalty account (staff)",
    parameters=[OpenApiParameter(name="limit", type=int, description="Ledger entries to return (1-100)")],
    responses={
        200: OpenApiResponse(response=AccountSummarySerializer, description="Account retrieved"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="User not found"),
    },
    tags=["Loyalty - Accounts"],
)
@api_view(["GET"])
@permission_classes([IsAdminUser])
def user_account(request, user_id):
    return _summary_response(user_id, request)


@extend_schema(
    operation_id="loyalty_redeem",
    summary="Redeem loyalty points",
    description="""
    **What it receives:**
    - `points`: Whole number of points to spend
    - `note` (optional): Shown on the ledger entry
    - `user_id` (optional, staff only): Redeem on behalf of another user

    **What it returns:**
    - The redemption, its ledger entry, the cash amount and the updated account
    """,
    request=RedeemRequestSerializer,
    responses={
        201: OpenApiResponse(response=RedeemResponseSerializer, description="Points redeemed"),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid points"),
        403: OpenApiResponse(response=ErrorResponseSerializer, description="Redeeming for another user"),
        409: OpenApiResponse(response=ErrorResponseSerializer, description="Insufficient balance"),
    },
    tags=["Loyalty - Accounts"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def redeem(request):
    serializer = RedeemRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_error(serializer)

    data = serializer.validated_data
    user_id = data.get("user_id", request.user.id)
    if user_id != request.user.id and not request.user.is_staff:
        return error_response(service_err(ErrorCodes.FORBIDDEN, "Only staff can redeem for other users"))

    result = container.loyalty_service().redeem(user_id, data["points"], note=data.get("note") or None)
    if not result.ok:
        return error_response(result)
    return Response(RedeemResponseSerializer(result.value).data, status=status.HTTP_201_CREATED)


@extend_schema(
    operation_id="loyalty_award",
    summary="Assign points to a user (staff)",
    description="""
    **What it receives:**
    - `user_id`: Account owner
    - `points` or `action_key` (+ optional `multiplier`)
    - `reference_type` + `reference_id` (optional, together): Business event key; an event is credited once
    - `allow_negative` (optional): Permit a debit adjustment
    - `description`, `metadata` (optional)
    """,
    request=AwardRequestSerializer,
    responses={
        201: OpenApiResponse(response=AwardResponseSerializer, description="Points recorded"),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid points or reference"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="User or action not found"),
        409: OpenApiResponse(
            response=ErrorResponseSerializer, description="Duplicate reference or insufficient balance"
        ),
    },
    tags=["Loyalty - Accounts"],
)
@api_view(["POST"])
@permission_classes([IsAdminUser])
def award(request):
    serializer = AwardRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_error(serializer)

    data = serializer.validated_data
    result = container.loyalty_service().award(
        data["user_id"],
        points=data.get("points"),
        action_key=data.get("action_key") or None,
        multiplier=data.get("multiplier"),
        reference_type=data.get("reference_type") or None,
        reference_id=data.get("reference_id") or None,
        allow_negative=data["allow_negative"],
        description=data.get("description") or None,
        metadata=data.get("metadata"),
    )
    if not result.ok:
        return error_response(result)

    _notify_points_earned(result.value.account, result.value.transaction)
    return Response(AwardResponseSerializer(result.value).data, status=status.HTTP_201_CREATED)


@extend_schema(
    operation_id="loyalty_order_award",
    summary="Award purchase points for an order (staff)",
    description="""
    Credits `floor(order.total)` points (times the configured rate) to the
    buyer. Each order is credited at most once; a second call returns 409.
    Orders worth no points return 200 with `skipped: true`.
    """,
    request=None,
    responses={
        201: OpenApiResponse(response=OrderAwardResponseSerializer, description="Points recorded"),
        200: OpenApiResponse(response=OrderAwardResponseSerializer, description="Order earns no points"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
        409: OpenApiResponse(response=ErrorResponseSerializer, description="Order already credited"),
    },
    tags=["Loyalty - Accounts"],
)
@api_view(["POST"])
@permission_classes([IsAdminUser])
def order_award(request, order_id):
    result = container.loyalty_service().award_for_order(order_id)
    if not result.ok:
        return error_response(result)

    outcome = result.value
    if outcome.skipped:
        return Response(OrderAwardResponseSerializer(outcome).data, status=status.HTTP_200_OK)

    _notify_points_earned(outcome.account, outcome.transaction)
    return Response(OrderAwardResponseSerializer(outcome).data, status=status.HTTP_201_CREATED)
