from django.apps import AppConfig
import os

class UsersConfig(AppConfig):
    name = 'apps.users'
    path = os.path.dirname(os.path.abspath(__file__))
    app_label = 'users'
    verbose_name = 'Accounts'
