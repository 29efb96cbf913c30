from typing import Optional

from django.core.exceptions import ImproperlyConfigured
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from simple_options.exceptions import InvalidOptionKey
from simple_options.serializers import (
    OptionBatchResponseSerializer,
    OptionBatchSerializer,
    OptionListResponseSerializer,
    OptionSerializer,
    OptionWriteSerializer,
)
from simple_options.services import OptionStore

TRUE_VALUES = {"1", "true", "yes"}
FALSE_VALUES = {"0", "false", "no"}

KEY_PARAMETER = OpenApiParameter(
    name="key",
    type=str,
    location=OpenApiParameter.PATH,
    description="The option key (max 255 bytes)",
)


def _unavailable(result):
    return Response(
        {"detail": f"Option store unavailable: {result.error}"},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


class OptionStoreMixin:
    """Gives a view the store it works against, passed in through ``as_view(store=...)``."""

    store: Optional[OptionStore] = None

    def get_store(self) -> OptionStore:
        if self.store is None:
            raise ImproperlyConfigured(
                f"{type(self).__name__} has no option store; pass as_view(store=...)"
            )
        return self.store


class OptionView(OptionStoreMixin, APIView):
    """Handle single option operations."""

    @extend_schema(
        operation_id="read_option",
        summary="Read an option",
        description="Retrieve the decoded value stored under a key.",
        parameters=[KEY_PARAMETER],
        responses={
            200: OpenApiResponse(response=OptionSerializer, description="The option"),
            404: OpenApiResponse(description="Option not found"),
            503: OpenApiResponse(description="Database unavailable"),
        },
        tags=["Options"],
    )
    def get(self, request, key: str):
        try:
            result = self.get_store().read(key)
        except InvalidOptionKey as e:
            raise ValidationError({"key": str(e)})

        if result.failed:
            return _unavailable(result)
        if result.not_found:
            return Response({"detail": "Option not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(OptionSerializer({"key": key, "value": result.value}).data)

    @extend_schema(
        operation_id="write_option",
        summary="Create or update an option",
        description="Store a value under a key. Strings are stored verbatim, any other JSON value is stored encoded.",
        parameters=[KEY_PARAMETER],
        request=OptionWriteSerializer,
        responses={
            200: OpenApiResponse(response=OptionSerializer, description="Option stored"),
            400: OpenApiResponse(description="Invalid key or payload"),
            409: OpenApiResponse(description="Option deleted concurrently"),
            503: OpenApiResponse(description="Database unavailable"),
        },
        tags=["Options"],
    )
    def put(self, request, key: str):
        serializer = OptionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        value = serializer.validated_data["value"]
        try:
            result = self.get_store().write(key, value, serializer.validated_data["autoload"])
        except InvalidOptionKey as e:
            raise ValidationError({"key": str(e)})

        if result.failed:
            return _unavailable(result)
        if result.not_found:
            return Response(
                {"detail": "Option was deleted while being written"},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(OptionSerializer({"key": key, "value": value}).data)

    @extend_schema(
        operation_id="delete_option",
        summary="Delete an option",
        parameters=[KEY_PARAMETER],
        responses={
            204: OpenApiResponse(description="Option deleted"),
            404: OpenApiResponse(description="Option not found"),
            503: OpenApiResponse(description="Database unavailable"),
        },
        tags=["Options"],
    )
    def delete(self, request, key: str):
        try:
            result = self.get_store().remove(key)
        except InvalidOptionKey as e:
            raise ValidationError({"key": str(e)})

        if result.failed:
            return _unavailable(result)
        if result.not_found:
            return Response({"detail": "Option not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OptionListView(OptionStoreMixin, APIView):
    """Return all options, optionally filtered on the autoload flag."""

    @extend_schema(
        operation_id="list_options",
        summary="List options",
        parameters=[
            OpenApiParameter(
                name="autoload",
                type=bool,
                location=OpenApiParameter.QUERY,
                description="Only return options with this autoload flag",
                required=False,
            ),
        ],
        responses={
            200: OpenApiResponse(response=OptionListResponseSerializer, description="All matching options"),
            400: OpenApiResponse(description="Invalid autoload filter"),
            503: OpenApiResponse(description="Database unavailable"),
        },
        tags=["Options"],
    )
    def get(self, request):
        autoload = request.query_params.get("autoload")
        if autoload is not None:
            if autoload.lower() in TRUE_VALUES:
                autoload = True
            elif autoload.lower() in FALSE_VALUES:
                autoload = False
            else:
                return Response(
                    {"detail": "autoload must be true or false"},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        result = self.get_store().read_all(autoload)
        if result.failed:
            return _unavailable(result)
        return Response({"count": len(result.value), "results": result.value})


class OptionBatchView(OptionStoreMixin, APIView):
    """Set several options in a single request."""

    @extend_schema(
        operation_id="set_options",
        summary="Set several options",
        description="Store every option in the batch. Not atomic: a failed entry does not stop the others or undo earlier ones.",
        request=OptionBatchSerializer,
        responses={
            200: OpenApiResponse(response=OptionBatchResponseSerializer, description="Batch processed"),
            400: OpenApiResponse(description="Empty batch or invalid keys"),
        },
        tags=["Options"],
    )
    def post(self, request):
        serializer = OptionBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        success = self.get_store().set_multiple(
            serializer.validated_data["options"],
            autoload=serializer.validated_data["autoload"],
        )
        return Response({"success": success}, status=status.HTTP_200_OK)
