"""
Django settings for the teletherapy coordinator project.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get('SECRET_KEY', 'django-insecure-dev-only-change-me')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.environ.get('DEBUG', '0') == '1'

ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'apps.users',
    'apps.clients',
    'apps.therapists',
    'apps.pricing',
    'apps.subscriptions',
    'apps.therapy_sessions',
    'apps.payments',
    'apps.utils',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'coordinator.urls'
ASGI_APPLICATION = 'coordinator.asgi.application'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = False

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Database - using MongoDB instead of default
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.dummy'
    }
}

# Stripe is only used to open charge records for amounts computed here
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', os.environ.get('STRIPE_API_KEY'))
PAYMENT_CURRENCY = os.environ.get('PAYMENT_CURRENCY', 'usd')

FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')

# Side effects (notifications, gateway calls) run on a thread pool unless eager
BACKGROUND_TASKS_EAGER = os.environ.get('BACKGROUND_TASKS_EAGER', '0') == '1'
BACKGROUND_MAX_WORKERS = int(os.environ.get('BACKGROUND_MAX_WORKERS', '4'))

# Pricing defaults. The live values are kept in the platform_settings
# collection and edited by admins; these seed it.
DEFAULT_RATE_CAPS = {
    'SLP': 75,   # full licensure
    'SLPA': 55,  # supervised assistant
}
DEFAULT_CANCELLATION_FEES = {
    'SLPA': 15,
}
DEFAULT_PAYMENT_SPLIT = {
    'platform_fee_percent': 20,
    'therapist_fee_percent': 80,
}
DEFAULT_PRICING_TIERS = {
    'rooted': {
        'name': 'Rooted Tier',
        'price': 50,
        'duration': 30,
        'billing_cycle': 'every-4-weeks',
        'sessions_per_month': 4,
        'features': [
            '2-4 sessions per month',
            'Personalized treatment plan',
            'Progress updates every 8-10 weeks',
            'Caregiver tips',
        ],
    },
    'flourish': {
        'name': 'Flourish Tier',
        'price': 85,
        'duration': 60,
        'billing_cycle': 'every-4-weeks',
        'sessions_per_month': 4,
        'features': [
            'Weekly or bi-weekly sessions',
            'Detailed monthly progress reports',
            'Monthly family coaching',
            'Priority scheduling',
        ],
        'popular': True,
    },
    'bloom': {
        'name': 'Bloom Tier',
        'price': 90,
        'duration': 60,
        'billing_cycle': 'pay-as-you-go',
        'sessions_per_month': 3,
        'features': [
            '2-3 sessions monthly',
            'Flexible scheduling',
            'No long-term commitment',
        ],
    },
    'evaluation': {
        'name': 'Initial Evaluation',
        'price': 0,
        'duration': 60,
        'billing_cycle': 'one-time',
        'sessions_per_month': 1,
        'features': ['Initial diagnostic evaluation'],
    },
}

DEFAULT_SESSION_PRICE = 85
DEFAULT_SESSION_DURATION = 45
SESSION_DURATION_BOUNDS = (15, 120)

# Minutes after the scheduled start before an unattended session is a no-show
NO_SHOW_GRACE_MINUTES = 15

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
        },
        'pymongo': {
            'handlers': ['console'],
            'level': 'WARNING',
        },
        'apps': {
            'handlers': ['console'],
            'level': os.environ.get('APP_LOG_LEVEL', 'INFO'),
        },
        'database': {
            'handlers': ['console'],
            'level': 'INFO',
        },
    },
}
