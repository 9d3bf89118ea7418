from django.apps import AppConfig
import os

class UtilsConfig(AppConfig):
    name = 'apps.utils'
    path = os.path.dirname(os.path.abspath(__file__))
    app_label = 'utils'
    verbose_name = 'Shared utilities'
