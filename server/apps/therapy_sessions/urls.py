from django.urls import path
from . import views

urlpatterns = [
    path("", views.sessions, name="sessions"),
    path("<str:session_id>/", views.session_detail, name="session_detail"),
    path("<str:session_id>/confirm/", views.confirm_session, name="confirm_session"),
    path("<str:session_id>/start/", views.start_session, name="start_session"),
    path("<str:session_id>/complete/", views.complete_session, name="complete_session"),
    path("<str:session_id>/cancel/", views.cancel_session, name="cancel_session"),
    path("<str:session_id>/reschedule/", views.reschedule_session, name="reschedule_session"),
    path("<str:session_id>/no-show/", views.mark_no_show, name="mark_no_show"),
]
