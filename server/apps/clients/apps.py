from django.apps import AppConfig
import os

class ClientsConfig(AppConfig):
    name = 'apps.clients'
    path = os.path.dirname(os.path.abspath(__file__))
    app_label = 'clients'
    verbose_name = 'Clients'
