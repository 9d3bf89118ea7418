from django.urls import path
from . import views

urlpatterns = [
    path("tiers/", views.pricing_tiers, name="pricing_tiers"),
    path("tiers/<str:tier_key>/", views.pricing_tier_detail, name="pricing_tier_detail"),
    path("rate-caps/", views.rate_caps, name="rate_caps"),
    path("payment-split/", views.payment_split, name="payment_split"),
    path("history/", views.settings_history, name="pricing_settings_history"),
]
