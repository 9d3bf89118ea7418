from django.urls import path
from . import views

urlpatterns = [
    path("", views.register_therapist, name="register_therapist"),
    path("bulk-credentials/", views.bulk_update_credentials, name="bulk_update_credentials"),
    path("<str:therapist_id>/", views.therapist_detail, name="therapist_detail"),
    path("<str:therapist_id>/rate/", views.update_rate, name="update_therapist_rate"),
    path("<str:therapist_id>/credentials/", views.update_credentials, name="update_therapist_credentials"),
    path("<str:therapist_id>/status/", views.update_status, name="update_therapist_status"),
    path("<str:therapist_id>/documents/", views.submit_document, name="submit_compliance_document"),
    path("<str:therapist_id>/documents/<str:document_type>/verify/", views.verify_document,
         name="verify_compliance_document"),
    path("<str:therapist_id>/audit-log/", views.audit_log, name="therapist_audit_log"),
]
