# batch_core/views_batch_api.py
from __future__ import annotations

from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import OpenApiResponse, extend_schema

from batch_core.filters import BatchFilter
from batch_core.models import Batch
from batch_core.serializers import (
    BatchEventSerializer,
    BatchSerializer,
    JudgmentSerializer,
    QcResultSerializer,
    QcSessionSerializer,
    ResultValueSerializer,
    ReviewSerializer,
    SubmitForReviewSerializer,
    TransitionRequestSerializer,
)
from batch_core.services import default_lifecycle_service, default_qc_session_service
from batch_core.workflows import workflow_definition


# ===============================================================
# Batches
# ===============================================================

class BatchListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = BatchSerializer
    filterset_class = BatchFilter
    queryset = (
        Batch.objects.select_related("product", "equipment")
        .filter(is_archived=False)
        .order_by("-created_at")
    )


class BatchDetailView(generics.RetrieveAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = BatchSerializer
    queryset = Batch.objects.select_related("product", "equipment")


class BatchAllowedTransitionsView(APIView):
    """
    Next statuses for the caller, with the reason each blocked one is blocked.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: OpenApiResponse(description="Role-aware next statuses")})
    def get(self, request, pk: int):
        return Response(default_lifecycle_service().allowed_transitions(pk, request.user))


class BatchTransitionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=TransitionRequestSerializer,
        responses={
            200: BatchSerializer,
            400: OpenApiResponse(description="Validation error or invalid transition"),
            403: OpenApiResponse(description="Role not allowed"),
            409: OpenApiResponse(description="Business guard or concurrency conflict"),
        },
    )
    def post(self, request, pk: int):
        payload = TransitionRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data

        batch = default_lifecycle_service().transition(
            pk,
            data["to_status"],
            request.user,
            note=data["note"],
            metadata=data["metadata"],
            signature=data["signature"],
            release_type=data["release_type"],
        )
        return Response(BatchSerializer(batch).data)


class BatchEventsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=BatchEventSerializer(many=True))
    def get(self, request, pk: int):
        events = default_lifecycle_service().events(pk)
        return Response(BatchEventSerializer(events, many=True).data)


# ===============================================================
# QC session
# ===============================================================

class QcSessionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=QcSessionSerializer)
    def get(self, request, pk: int):
        session = default_qc_session_service().session_for_batch(pk)
        return Response(QcSessionSerializer(session).data)


class QcSessionGenerateView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={201: QcSessionSerializer})
    def post(self, request, pk: int):
        session = default_qc_session_service().generate_session(pk, request.user)
        return Response(QcSessionSerializer(session).data, status=status.HTTP_201_CREATED)


class QcSessionSubmitView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=SubmitForReviewSerializer, responses=QcSessionSerializer)
    def post(self, request, pk: int):
        payload = SubmitForReviewSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        session = default_qc_session_service().submit_for_review(
            pk, request.user, notes=payload.validated_data["notes"]
        )
        return Response(QcSessionSerializer(session).data)


class QcSessionReviewView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=ReviewSerializer, responses=QcSessionSerializer)
    def post(self, request, pk: int):
        payload = ReviewSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data

        session = default_qc_session_service().review(
            pk, data["decision"], request.user, notes=data["notes"]
        )
        return Response(QcSessionSerializer(session).data)


class QcResultEntryView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=ResultValueSerializer, responses=QcResultSerializer)
    def put(self, request, pk: int):
        payload = ResultValueSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        result = default_qc_session_service().submit_result(
            pk, payload.validated_data["value"], request.user
        )
        return Response(QcResultSerializer(result).data)


class QcResultJudgmentView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=JudgmentSerializer, responses=QcResultSerializer)
    def post(self, request, pk: int):
        payload = JudgmentSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data

        result = default_qc_session_service().record_judgment(
            pk, data["decision"], request.user, reason=data["reason"]
        )
        return Response(QcResultSerializer(result).data)


# ===============================================================
# Workflow definition
# ===============================================================

class BatchWorkflowDefinitionView(APIView):
    """
    Static batch workflow: graph, terminal states, role targets.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(workflow_definition())
