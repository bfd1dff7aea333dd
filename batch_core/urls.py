# batch_core/urls.py

from django.urls import path

from .views_batch_api import (
    BatchAllowedTransitionsView,
    BatchDetailView,
    BatchEventsView,
    BatchListView,
    BatchTransitionView,
    BatchWorkflowDefinitionView,
    QcResultEntryView,
    QcResultJudgmentView,
    QcSessionGenerateView,
    QcSessionReviewView,
    QcSessionSubmitView,
    QcSessionView,
)

app_name = "batch_core"

urlpatterns = [
    # -------------------------------------------------
    # Batches
    # -------------------------------------------------
    path("batches/", BatchListView.as_view(), name="batch-list"),
    path("batches/<int:pk>/", BatchDetailView.as_view(), name="batch-detail"),
    path("batches/<int:pk>/allowed/", BatchAllowedTransitionsView.as_view(), name="batch-allowed"),
    path("batches/<int:pk>/transition/", BatchTransitionView.as_view(), name="batch-transition"),
    path("batches/<int:pk>/events/", BatchEventsView.as_view(), name="batch-events"),

    # -------------------------------------------------
    # QC session
    # -------------------------------------------------
    path("batches/<int:pk>/qc-session/", QcSessionView.as_view(), name="qc-session"),
    path("batches/<int:pk>/qc-session/generate/", QcSessionGenerateView.as_view(), name="qc-session-generate"),
    path("batches/<int:pk>/qc-session/submit/", QcSessionSubmitView.as_view(), name="qc-session-submit"),
    path("batches/<int:pk>/qc-session/review/", QcSessionReviewView.as_view(), name="qc-session-review"),
    path("qc-results/<int:pk>/", QcResultEntryView.as_view(), name="qc-result-entry"),
    path("qc-results/<int:pk>/judgment/", QcResultJudgmentView.as_view(), name="qc-result-judgment"),

    # -------------------------------------------------
    # Workflow definition
    # -------------------------------------------------
    path("workflows/batch/definition/", BatchWorkflowDefinitionView.as_view(), name="batch-workflow-definition"),
]
