from django.urls import path
from . import views

urlpatterns = [
    path("", views.subscribe, name="subscribe"),
    path("current/", views.current_subscription, name="current_subscription"),
    path("current/cancel/", views.cancel_current_subscription, name="cancel_current_subscription"),
    path("history/", views.subscription_history, name="subscription_history"),
    path("remaining-sessions/", views.remaining_sessions, name="remaining_sessions"),
    path("<str:subscription_id>/activate/", views.activate_subscription, name="activate_subscription"),
    path("<str:subscription_id>/cancel/", views.cancel_subscription, name="cancel_subscription"),
]
