from django.apps import AppConfig
import os

class PricingConfig(AppConfig):
    name = 'apps.pricing'
    path = os.path.dirname(os.path.abspath(__file__))
    app_label = 'pricing'
    verbose_name = 'Pricing'
