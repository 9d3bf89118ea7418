from django.apps import AppConfig
import os

class SubscriptionsConfig(AppConfig):
    name = 'apps.subscriptions'
    path = os.path.dirname(os.path.abspath(__file__))
    app_label = 'subscriptions'
    verbose_name = 'Subscriptions'
