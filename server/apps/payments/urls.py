from django.urls import path
from . import views

urlpatterns = [
    path("history/", views.payment_history, name="payment_history"),
    path("sessions/<str:session_id>/", views.session_payments, name="session_payments"),
]
