"""
Django settings for the marketplace backend.

Values that differ between environments are read from environment variables;
the defaults give a working local/test setup on SQLite.
"""

import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_list(name, default=''):
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-local-development-key')

DEBUG = _env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = _env_list('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver')


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    'rest_framework',
    'rest_framework_simplejwt',
    'django_filters',
    'drf_spectacular',

    'accounts',
    'products',
    'cart',
    'orders',
    'finance',
    'deliveries',
    'notifications',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'core.wsgi.application'


# Database
# SQLite for local work and tests; PostgreSQL in production
# (row locks and partial unique constraints are relied upon there).

if os.environ.get('DATABASE_ENGINE', 'sqlite') == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ.get('DATABASE_NAME', 'marketplace'),
            'USER': os.environ.get('DATABASE_USER', 'marketplace'),
            'PASSWORD': os.environ.get('DATABASE_PASSWORD', ''),
            'HOST': os.environ.get('DATABASE_HOST', 'localhost'),
            'PORT': os.environ.get('DATABASE_PORT', '5432'),
            'ATOMIC_REQUESTS': False,
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
            # Writers take the lock up front and queue behind each other
            # instead of failing on a lock upgrade.
            'OPTIONS': {
                'timeout': 20,
                'transaction_mode': 'IMMEDIATE',
            },
            # File backed so threaded tests share one database.
            'TEST': {
                'NAME': BASE_DIR / 'test_db.sqlite3',
            },
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

AUTH_USER_MODEL = 'accounts.User'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# Django REST framework

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'core.exceptions.api_exception_handler',
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=int(os.environ.get('JWT_ACCESS_MINUTES', '60'))),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=int(os.environ.get('JWT_REFRESH_DAYS', '7'))),
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Marketplace API',
    'DESCRIPTION': 'Orders, payments and delivery hand-off for a multi-role marketplace.',
    'VERSION': '1.0.0',
}


# Orders & delivery

DELIVERY_CODE_LENGTH = int(os.environ.get('DELIVERY_CODE_LENGTH', '6'))
# Characters that cannot be confused when read aloud or typed on a phone.
DELIVERY_CODE_ALPHABET = 'abcdefghjkmnpqrstuvwxyz23456789'


# Payment gateways

PAYMENT_GATEWAYS = {
    'cash': 'finance.gateways.CashOnDeliveryGateway',
    'mtn_momo': 'finance.gateways.MtnMomoGateway',
    'airtel_money': 'finance.gateways.AirtelMoneyGateway',
    'card': 'finance.gateways.CardGateway',
}

# Provider used when the caller does not choose one for a payment method.
DEFAULT_PAYMENT_PROVIDERS = {
    'cash_on_delivery': 'cash',
    'mobile_money': os.environ.get('DEFAULT_MOBILE_MONEY_PROVIDER', 'mtn_momo'),
    'card': 'card',
}

PAYMENT_GATEWAY_TIMEOUT = float(os.environ.get('PAYMENT_GATEWAY_TIMEOUT', '15'))

MTN_MOMO = {
    'BASE_URL': os.environ.get('MTN_MOMO_BASE_URL', 'https://sandbox.momodeveloper.mtn.com'),
    'API_USER': os.environ.get('MTN_MOMO_API_USER', ''),
    'API_KEY': os.environ.get('MTN_MOMO_API_KEY', ''),
    'SUBSCRIPTION_KEY': os.environ.get('MTN_MOMO_SUBSCRIPTION_KEY', ''),
    'TARGET_ENVIRONMENT': os.environ.get('MTN_MOMO_ENVIRONMENT', 'sandbox'),
    'CURRENCY': os.environ.get('MTN_MOMO_CURRENCY', 'EUR'),
    'CALLBACK_URL': os.environ.get('MTN_MOMO_CALLBACK_URL', ''),
}

AIRTEL_MONEY = {
    'BASE_URL': os.environ.get('AIRTEL_MONEY_BASE_URL', 'https://openapiuat.airtel.africa'),
    'CLIENT_ID': os.environ.get('AIRTEL_MONEY_CLIENT_ID', ''),
    'CLIENT_SECRET': os.environ.get('AIRTEL_MONEY_CLIENT_SECRET', ''),
    'COUNTRY': os.environ.get('AIRTEL_MONEY_COUNTRY', 'UG'),
    'CURRENCY': os.environ.get('AIRTEL_MONEY_CURRENCY', 'UGX'),
}

CARD_GATEWAY = {
    'BASE_URL': os.environ.get('CARD_GATEWAY_BASE_URL', 'https://api.stripe.com'),
    'SECRET_KEY': os.environ.get('CARD_GATEWAY_SECRET_KEY', ''),
    'CURRENCY': os.environ.get('CARD_GATEWAY_CURRENCY', 'xaf'),
}


# Logging

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        app: {
            'handlers': ['console'],
            'level': os.environ.get('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        }
        for app in ('orders', 'deliveries', 'finance', 'notifications', 'cart', 'products')
    },
}
